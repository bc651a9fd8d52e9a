"""Wires providers, stores and the bot together from settings."""

import logging
from typing import Optional

from ..config import settings
from ..core.conversation.orchestrator import WalletBot
from ..core.execution.sequencer import TransactionSequencer
from ..core.quote import QuoteEngine
from ..core.wallet.store import SessionStore, WalletStore, build_wallet_store
from ..providers.base import LedgerProvider, PriceProvider
from ..providers.hashpack import HashpackPriceProvider
from ..providers.telegram import TelegramTransport
from .poller import UpdatePoller


logger = logging.getLogger(__name__)


def _default_ledger() -> LedgerProvider:
    # Imported lazily so the SDK is only loaded when the bot actually runs
    from ..providers.hedera import HederaLedgerProvider

    return HederaLedgerProvider()


class BotRuntime:
    """Owns the long-lived collaborators of one running bot."""

    def __init__(
        self,
        *,
        transport: TelegramTransport,
        ledger: LedgerProvider,
        prices: PriceProvider,
        sessions: SessionStore,
        bot: WalletBot,
    ):
        self.transport = transport
        self.ledger = ledger
        self.prices = prices
        self.sessions = sessions
        self.bot = bot
        self.poller: Optional[UpdatePoller] = None

    @classmethod
    def build(
        cls,
        *,
        transport: Optional[TelegramTransport] = None,
        ledger: Optional[LedgerProvider] = None,
        prices: Optional[PriceProvider] = None,
        store: Optional[WalletStore] = None,
    ) -> "BotRuntime":
        transport = transport or TelegramTransport()
        ledger = ledger or _default_ledger()
        prices = prices or HashpackPriceProvider()
        sessions = SessionStore(store or build_wallet_store())
        bot = WalletBot(
            transport=transport,
            sessions=sessions,
            ledger=ledger,
            quotes=QuoteEngine(prices),
            sequencer=TransactionSequencer(ledger),
        )
        return cls(transport=transport, ledger=ledger, prices=prices, sessions=sessions, bot=bot)

    async def start(self, polling: Optional[bool] = None) -> None:
        polling = settings.telegram_use_polling if polling is None else polling
        if not settings.has_telegram_token:
            logger.warning("No Telegram bot token configured; updates will not be received")
            return
        if not settings.has_operator:
            logger.warning("No operator account configured; wallet creation will fail")
        if polling:
            self.poller = UpdatePoller(self.bot, self.transport)
            await self.poller.start()

    async def stop(self) -> None:
        if self.poller is not None:
            await self.poller.stop()
            self.poller = None
        await self.bot.shutdown()
        await self.sessions.close()
        await self.prices.close()
        await self.ledger.close()
        await self.transport.close()
