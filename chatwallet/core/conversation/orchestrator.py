"""
WalletBot turns inbound chat updates into wallet operations.

Every update is handled under a per-user lock, so one user's flow steps are
strictly ordered while different users interleave freely. Failures are
caught at the edge of each handler and answered with a chat message.
"""

from __future__ import annotations

import asyncio
import json
import logging
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from ...cache import ConfirmationGuard
from ...config import settings
from ...logging_config import bind_update_context
from ...providers.base import ChatTransport, LedgerProvider
from ...services.qr import qr_png
from ...types.telegram import CallbackQuery, TelegramMessage, Update
from ..errors import (
    InsufficientBalance,
    LedgerCallFailed,
    QuoteUnavailable,
    StorageUnavailable,
    TransactionFailed,
    ValidationError,
    WalletBotError,
)
from ..execution.models import OperationKind
from ..execution.sequencer import TransactionSequencer, from_base_units, to_base_units
from ..quote import QuoteEngine, compute_cross_amount
from ..wallet.models import UserWallet
from ..wallet.store import SessionStore
from . import messages as msg
from .callbacks import CANCEL_ACTIONS, Action, Confirmation, parse_confirmation
from .models import ConversationFlow, FlowKind, FlowStep, InputKind
from .state_machine import ConversationStateMachine
from .validators import parse_amount, parse_ledger_id


_CANCELLED_TEXT = {
    FlowKind.WITHDRAW: msg.WITHDRAW_CANCELLED,
    FlowKind.BUY: msg.PURCHASE_CANCELLED,
    FlowKind.SELL_MANUAL: msg.SALE_CANCELLED,
    FlowKind.SELL_ALL: msg.SALE_CANCELLED,
}

_INVALID_INPUT_TEXT = {
    "destination": msg.INVALID_ACCOUNT,
    "token": msg.INVALID_TOKEN,
    "amount": msg.INVALID_AMOUNT,
}

_PREPARE_FAILED_TEXT = {
    FlowKind.BUY: msg.PREPARE_PURCHASE_FAILED,
    FlowKind.SELL_MANUAL: msg.PREPARE_SALE_FAILED,
    FlowKind.SELL_ALL: msg.PREPARE_SALE_FAILED,
}


def _is_start_command(text: str) -> bool:
    if not text.startswith("/"):
        return False
    command = text.split()[0].split("@")[0]
    return command == "/start"


class WalletBot:
    """Dispatches chat updates to the wallet flows."""

    def __init__(
        self,
        *,
        transport: ChatTransport,
        sessions: SessionStore,
        ledger: LedgerProvider,
        quotes: QuoteEngine,
        sequencer: TransactionSequencer,
        flows: Optional[ConversationStateMachine] = None,
        guard: Optional[ConfirmationGuard] = None,
        native_symbol: Optional[str] = None,
        min_native_balance: Optional[Decimal] = None,
        sensitive_message_ttl: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self.transport = transport
        self.sessions = sessions
        self.ledger = ledger
        self.quotes = quotes
        self.sequencer = sequencer
        self.flows = flows or ConversationStateMachine()
        self.guard = guard or ConfirmationGuard(settings.confirmation_replay_ttl_seconds)
        self.native_symbol = native_symbol or settings.native_symbol
        self.min_native_balance = (
            settings.min_native_balance if min_native_balance is None else min_native_balance
        )
        self.sensitive_message_ttl = (
            settings.sensitive_message_ttl_seconds if sensitive_message_ttl is None else sensitive_message_ttl
        )
        self._sleep = sleep
        self._user_locks: Dict[int, asyncio.Lock] = {}
        self._background: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------
    @property
    def pending_tasks(self) -> Set[asyncio.Task]:
        return set(self._background)

    def _user_lock(self, user_id: int) -> asyncio.Lock:
        if user_id not in self._user_locks:
            self._user_locks[user_id] = asyncio.Lock()
        return self._user_locks[user_id]

    async def handle_update(self, update: Update) -> None:
        """Handle one inbound update; never raises."""
        query = update.callback_query
        message = update.message
        if query is not None:
            if query.message is None:
                self._logger.debug(f"Update {update.update_id}: callback without message ignored")
                await self._answer(query.id, None)
                return
            user_id, chat_id = query.from_user.id, query.message.chat.id
        elif message is not None and message.from_user is not None:
            user_id, chat_id = message.from_user.id, message.chat.id
        else:
            return

        async with self._user_lock(user_id):
            bind_update_context(user_id=user_id, chat_id=chat_id)
            answer: Optional[str] = None
            try:
                if query is not None:
                    answer = await self._on_callback(user_id, chat_id, query)
                else:
                    await self._on_message(user_id, chat_id, message)
            except Exception as e:  # noqa: BLE001
                await self._report(user_id, chat_id, e)
            finally:
                if query is not None:
                    await self._answer(query.id, answer)

    async def shutdown(self) -> None:
        """Cancel deferred chat actions that have not fired yet."""
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # ------------------------------------------------------------------
    # Error reporting
    # ------------------------------------------------------------------
    def _error_text(self, error: Exception, flow: Optional[ConversationFlow]) -> str:
        if isinstance(error, WalletBotError) and error.user_message:
            return error.user_message
        if isinstance(error, StorageUnavailable):
            return msg.STORAGE_ERROR
        if isinstance(error, ValidationError):
            template = _INVALID_INPUT_TEXT.get(error.field or "")
            if flow is None or template is None:
                return msg.INVALID_CONFIRMATION
            return template.format(cancelled=_CANCELLED_TEXT[flow.kind])
        if isinstance(error, InsufficientBalance):
            return msg.INSUFFICIENT_NATIVE.format(symbol=self.native_symbol)
        if isinstance(error, QuoteUnavailable) and flow is not None and flow.kind in _PREPARE_FAILED_TEXT:
            return _PREPARE_FAILED_TEXT[flow.kind]
        return msg.GENERIC_ERROR

    async def _report(self, user_id: int, chat_id: int, error: Exception) -> None:
        flow = self.flows.finish(user_id, reason=type(error).__name__)
        if isinstance(error, ValidationError):
            self._logger.info(f"Rejected input for {error.field}: {error.message}")
        elif isinstance(error, WalletBotError):
            self._logger.warning(f"{error.category.value} error: {error.message}")
        else:
            self._logger.exception(f"Unexpected error handling update: {error}")
        try:
            await self._send(chat_id, self._error_text(error, flow))
        except Exception:  # noqa: BLE001
            self._logger.exception("Failed to deliver error message")

    async def _answer(self, callback_id: str, text: Optional[str]) -> None:
        try:
            await self.transport.answer_callback(callback_id, text)
        except Exception as e:  # noqa: BLE001
            self._logger.warning(f"Failed to answer callback {callback_id}: {e}")

    # ------------------------------------------------------------------
    # Outbound helpers
    # ------------------------------------------------------------------
    async def _send(self, chat_id: int, text: str, **kwargs: Any) -> Dict[str, Any]:
        return await self.transport.send_message(chat_id, text, **kwargs)

    async def _show_main_menu(self, chat_id: int) -> None:
        await self._send(chat_id, msg.MAIN_MENU, reply_markup=msg.main_menu_keyboard())

    async def _require_wallet(self, user_id: int, chat_id: int) -> Optional[UserWallet]:
        wallet = await self.sessions.get_or_create(user_id)
        if not wallet.is_initialized:
            await self._send(chat_id, msg.WALLET_NOT_FOUND)
            return None
        return wallet

    async def _require_native_floor(self, wallet: UserWallet) -> Decimal:
        balance = await self.ledger.get_native_balance(wallet.account_id)
        if balance < self.min_native_balance:
            raise InsufficientBalance(
                f"Native balance {balance} below floor {self.min_native_balance}",
                required=str(self.min_native_balance),
                available=str(balance),
                asset=self.native_symbol,
            )
        return balance

    # ------------------------------------------------------------------
    # Text messages
    # ------------------------------------------------------------------
    async def _on_message(self, user_id: int, chat_id: int, message: TelegramMessage) -> None:
        text = (message.text or "").strip()
        if _is_start_command(text):
            await self._on_start(user_id, chat_id)
            return

        flow = self.flows.expecting(user_id, InputKind.TEXT)
        if flow is None:
            self._logger.debug("Text message with no flow expecting it ignored")
            return

        handlers = {
            FlowStep.AWAITING_DESTINATION: self._on_destination,
            FlowStep.AWAITING_TOKEN: self._on_token,
            FlowStep.AWAITING_AMOUNT: self._on_amount,
        }
        await handlers[flow.step](flow, text)

    async def _on_start(self, user_id: int, chat_id: int) -> None:
        self.flows.finish(user_id, reason="restart")
        wallet = await self.sessions.get_or_create(user_id)
        if wallet.is_initialized:
            await self._show_main_menu(chat_id)
            return

        try:
            account = await self.ledger.create_account()
        except LedgerCallFailed as e:
            self._logger.error(f"Wallet creation failed: {e.message}")
            await self._send(chat_id, msg.WALLET_CREATION_FAILED)
            return

        await self.sessions.persist(user_id, account.to_wallet())
        self._logger.info(f"Created account {account.account_id}")
        await self._send(
            chat_id,
            msg.wallet_created(account.account_id, account.private_key),
            reply_markup=msg.download_key_keyboard(),
            parse_mode=msg.MARKDOWN,
        )

    async def _on_destination(self, flow: ConversationFlow, text: str) -> None:
        destination = parse_ledger_id(text, field="destination")
        self.flows.advance(flow.user_id, destination=destination)
        await self._send(
            flow.chat_id,
            msg.ENTER_NATIVE_AMOUNT.format(symbol=self.native_symbol),
            reply_markup=msg.force_reply(),
        )

    async def _on_token(self, flow: ConversationFlow, text: str) -> None:
        token_id = parse_ledger_id(text, field="token")
        flow = self.flows.advance(flow.user_id, token_id=token_id)
        if flow.step == FlowStep.AWAITING_SELL_MODE:
            await self._send(flow.chat_id, msg.CHOOSE_SELL_MODE, reply_markup=msg.sell_mode_keyboard())
            return
        await self._send(
            flow.chat_id,
            msg.ENTER_SPEND_AMOUNT.format(symbol=self.native_symbol),
            reply_markup=msg.force_reply(),
        )

    async def _on_amount(self, flow: ConversationFlow, text: str) -> None:
        amount = parse_amount(text)
        if flow.kind == FlowKind.WITHDRAW:
            await self._confirm_withdraw(flow, amount)
        elif flow.kind == FlowKind.BUY:
            await self._confirm_purchase(flow, amount)
        else:
            await self._confirm_sale(flow, amount)

    async def _confirm_withdraw(self, flow: ConversationFlow, amount: Decimal) -> None:
        wallet = await self.sessions.get_or_create(flow.user_id)
        destination = flow.get("destination")
        confirmation = Confirmation(OperationKind.WITHDRAW, destination, amount)
        payload = confirmation.encode()
        self.flows.advance(flow.user_id, amount=amount)
        await self._send(
            flow.chat_id,
            msg.confirm_withdraw(wallet.account_id, destination, amount, self.native_symbol),
            reply_markup=msg.confirm_keyboard(payload, Action.CANCEL_WITHDRAW),
            parse_mode=msg.MARKDOWN,
        )

    async def _confirm_purchase(self, flow: ConversationFlow, amount: Decimal) -> None:
        token_id = flow.get("token_id")
        native_lookup = await self.quotes.lookup(self.quotes.native_asset_id)
        token_lookup = await self.quotes.lookup(token_id)
        native, token = native_lookup.unwrap(), token_lookup.unwrap()
        tokens_out = compute_cross_amount(native, token, amount)

        payload = Confirmation(OperationKind.BUY, token_id, amount, estimate=tokens_out).encode()
        self.flows.advance(flow.user_id, amount=amount, estimate=tokens_out)
        if token_lookup.used_fallback:
            await self._send(flow.chat_id, msg.fallback_price_warning(token_id, token.symbol))
        await self._send(
            flow.chat_id,
            msg.confirm_purchase(token_id, tokens_out, token.symbol, amount, self.native_symbol),
            reply_markup=msg.confirm_keyboard(payload, Action.CANCEL_BUY),
            parse_mode=msg.MARKDOWN,
        )

    async def _confirm_sale(self, flow: ConversationFlow, amount: Decimal) -> None:
        token_id = flow.get("token_id")
        native_lookup = await self.quotes.lookup(self.quotes.native_asset_id)
        token_lookup = await self.quotes.lookup(token_id)
        native, token = native_lookup.unwrap(), token_lookup.unwrap()
        price_in_native = compute_cross_amount(token, native, Decimal(1))
        native_out = compute_cross_amount(token, native, amount)

        payload = Confirmation(OperationKind.SELL, token_id, amount).encode()
        self.flows.advance(flow.user_id, amount=amount)
        if token_lookup.used_fallback:
            await self._send(flow.chat_id, msg.fallback_price_warning(token_id, token.symbol))
        await self._send(
            flow.chat_id,
            msg.confirm_sale(token_id, amount, token.symbol, price_in_native, native_out, self.native_symbol),
            reply_markup=msg.confirm_keyboard(payload, Action.CANCEL_SELL),
            parse_mode=msg.MARKDOWN,
        )

    # ------------------------------------------------------------------
    # Button callbacks
    # ------------------------------------------------------------------
    async def _on_callback(self, user_id: int, chat_id: int, query: CallbackQuery) -> Optional[str]:
        data = query.data or ""

        confirmation = parse_confirmation(data)
        if confirmation is not None:
            return await self._on_confirm(user_id, chat_id, query.message.message_id, confirmation)

        if data in CANCEL_ACTIONS:
            await self._on_cancel(user_id, chat_id, CANCEL_ACTIONS[data])
            return None

        if data in (Action.SELL_MANUAL, Action.SELL_ALL):
            await self._on_sell_mode(user_id, data)
            return None

        if data == Action.DOWNLOAD_KEY:
            await self._on_download_key(user_id, chat_id, query.message.message_id)
            return None

        handlers = {
            Action.MENU: self._on_menu,
            Action.DEPOSIT: self._on_deposit,
            Action.WITHDRAW: self._on_withdraw,
            Action.BUY: self._on_buy,
            Action.SELL: self._on_sell,
        }
        handler = handlers.get(data)
        if handler is None:
            self._logger.debug(f"Unknown callback {data!r} ignored")
            return None
        await handler(user_id, chat_id)
        return None

    async def _on_menu(self, user_id: int, chat_id: int) -> None:
        self.flows.finish(user_id, reason="menu")
        await self._show_main_menu(chat_id)

    async def _on_deposit(self, user_id: int, chat_id: int) -> None:
        self.flows.finish(user_id, reason="deposit")
        wallet = await self._require_wallet(user_id, chat_id)
        if wallet is None:
            return
        balance = await self.ledger.get_native_balance(wallet.account_id)
        await self._send(
            chat_id,
            msg.deposit_instructions(wallet.account_id, balance, self.native_symbol),
            reply_markup=msg.return_to_menu_keyboard(),
            parse_mode=msg.MARKDOWN,
        )
        try:
            await self.transport.send_photo(chat_id, qr_png(wallet.account_id), caption=msg.QR_CAPTION)
        except Exception as e:  # noqa: BLE001
            self._logger.warning(f"Failed to send deposit QR code: {e}")

    async def _on_download_key(self, user_id: int, chat_id: int, message_id: int) -> None:
        wallet = await self._require_wallet(user_id, chat_id)
        if wallet is None:
            return
        await self.transport.delete_message(chat_id, message_id)
        document = json.dumps({"privateKey": wallet.private_key_suffix}, indent=2).encode("utf-8")
        minutes = max(1, round(self.sensitive_message_ttl / 60))
        sent = await self.transport.send_document(
            chat_id,
            document,
            filename=msg.KEY_DOCUMENT_NAME,
            content_type="application/json",
            caption=msg.KEY_DOCUMENT_CAPTION.format(minutes=minutes),
            parse_mode=msg.MARKDOWN,
        )
        document_id = sent.get("message_id")
        if document_id is not None:
            self._schedule(self._expire_key_document(chat_id, document_id))

    def _schedule(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _expire_key_document(self, chat_id: int, message_id: int) -> None:
        await self._sleep(self.sensitive_message_ttl)
        try:
            await self.transport.delete_message(chat_id, message_id)
            await self._show_main_menu(chat_id)
        except Exception as e:  # noqa: BLE001
            self._logger.error(f"Failed to remove key document {message_id}: {e}")

    async def _on_withdraw(self, user_id: int, chat_id: int) -> None:
        wallet = await self._require_wallet(user_id, chat_id)
        if wallet is None:
            return
        balance = await self._require_native_floor(wallet)
        self.flows.start(user_id, chat_id, FlowKind.WITHDRAW)
        await self._send(
            chat_id,
            msg.withdraw_prompt(balance, self.native_symbol),
            reply_markup=msg.force_reply(),
            parse_mode=msg.MARKDOWN,
        )

    async def _on_buy(self, user_id: int, chat_id: int) -> None:
        wallet = await self._require_wallet(user_id, chat_id)
        if wallet is None:
            return
        balance = await self._require_native_floor(wallet)
        self.flows.start(user_id, chat_id, FlowKind.BUY)
        await self._send(
            chat_id,
            msg.buy_prompt(balance, self.native_symbol),
            reply_markup=msg.force_reply(),
            parse_mode=msg.MARKDOWN,
        )

    async def _on_sell(self, user_id: int, chat_id: int) -> None:
        wallet = await self._require_wallet(user_id, chat_id)
        if wallet is None:
            return
        self.flows.start(user_id, chat_id, FlowKind.SELL_MANUAL)
        await self._send(chat_id, msg.sell_prompt(), reply_markup=msg.force_reply(), parse_mode=msg.MARKDOWN)

    async def _on_sell_mode(self, user_id: int, data: str) -> None:
        flow = self.flows.expecting(user_id, InputKind.CALLBACK)
        if flow is None or flow.step != FlowStep.AWAITING_SELL_MODE:
            self._logger.debug(f"Sell mode {data!r} with no sale awaiting it ignored")
            return

        kind = FlowKind.SELL_ALL if data == Action.SELL_ALL else FlowKind.SELL_MANUAL
        flow = self.flows.branch(user_id, kind)
        token_id = flow.get("token_id")
        wallet = await self.sessions.get_or_create(user_id)
        token = await self.quotes.get_quote(token_id)
        raw_balance = await self.ledger.get_token_balance(wallet.account_id, token_id)

        if kind == FlowKind.SELL_MANUAL:
            self.flows.advance(user_id, decimals=token.decimals)
            await self._send(
                flow.chat_id,
                msg.sell_amount_prompt(from_base_units(raw_balance, token.decimals), token.symbol),
                reply_markup=msg.force_reply(),
            )
            return

        if raw_balance <= 0:
            self.flows.finish(user_id, reason="nothing to sell")
            await self._send(flow.chat_id, msg.NOTHING_TO_SELL.format(symbol=token.symbol))
            return

        self.flows.advance(user_id, amount_base_units=raw_balance)
        try:
            await self._execute_sale(
                wallet,
                flow.chat_id,
                token_id,
                raw_balance,
                sold=from_base_units(raw_balance, token.decimals),
                token_label=token.symbol,
                places=3,
            )
        finally:
            self.flows.finish(user_id, reason="sell all")

    async def _on_cancel(self, user_id: int, chat_id: int, operation: OperationKind) -> None:
        self.flows.finish(user_id, reason="cancelled")
        await self._send(chat_id, msg.CANCELLED_NOTICES[operation.value])
        await self._show_main_menu(chat_id)

    # ------------------------------------------------------------------
    # Confirmed operations
    # ------------------------------------------------------------------
    async def _on_confirm(
        self,
        user_id: int,
        chat_id: int,
        message_id: int,
        confirmation: Confirmation,
    ) -> Optional[str]:
        if not await self.guard.claim(chat_id, message_id):
            self._logger.info(f"Duplicate {confirmation.operation.value} confirmation ignored")
            return msg.ALREADY_PROCESSED

        flow = self.flows.expecting(user_id, InputKind.CALLBACK)
        if flow is not None and flow.step == FlowStep.AWAITING_CONFIRMATION:
            self.flows.advance(user_id)

        try:
            wallet = await self._require_wallet(user_id, chat_id)
            if wallet is None:
                await self.guard.release(chat_id, message_id)
                return None
            if confirmation.operation == OperationKind.WITHDRAW:
                await self._execute_withdraw(wallet, chat_id, message_id, confirmation)
            elif confirmation.operation == OperationKind.BUY:
                await self._execute_purchase(wallet, chat_id, message_id, confirmation)
            else:
                await self._execute_manual_sale(wallet, chat_id, message_id, confirmation)
        except Exception:
            # Executors report ledger failures themselves; whatever escapes left no live button behind a submission
            await self.guard.release(chat_id, message_id)
            raise
        finally:
            active = self.flows.get(user_id)
            if active is not None and active.step == FlowStep.EXECUTING:
                self.flows.finish(user_id, reason="confirmed")
        return None

    async def _retire_confirmation(self, chat_id: int, message_id: int) -> None:
        """Delete the confirmation message so its buttons can't be pressed again."""
        await self.transport.delete_message(chat_id, message_id)

    async def _execute_withdraw(
        self,
        wallet: UserWallet,
        chat_id: int,
        message_id: int,
        confirmation: Confirmation,
    ) -> None:
        await self._retire_confirmation(chat_id, message_id)
        try:
            result = await self.sequencer.withdraw(wallet.credentials(), confirmation.target, confirmation.amount)
        except TransactionFailed as e:
            await self._send(chat_id, msg.withdraw_rejected(e.status))
            return
        except LedgerCallFailed:
            await self._send(chat_id, msg.WITHDRAW_FAILED)
            return

        await self._send(
            chat_id,
            msg.withdraw_succeeded(confirmation.amount, confirmation.target, self.native_symbol, result.transaction_id),
        )

    async def _execute_purchase(
        self,
        wallet: UserWallet,
        chat_id: int,
        message_id: int,
        confirmation: Confirmation,
    ) -> None:
        token_lookup = await self.quotes.lookup(confirmation.target)
        token_label = token_lookup.quote.symbol if token_lookup.quote else confirmation.target
        await self._retire_confirmation(chat_id, message_id)
        try:
            result = await self.sequencer.buy(wallet.credentials(), confirmation.target, confirmation.amount)
        except LedgerCallFailed:
            await self._send(chat_id, msg.PURCHASE_FAILED.format(symbol=self.native_symbol))
            return

        await self._send(
            chat_id,
            msg.purchase_succeeded(
                confirmation.estimate,
                token_label,
                confirmation.amount,
                self.native_symbol,
                result.transaction_id,
            ),
        )

    async def _execute_manual_sale(
        self,
        wallet: UserWallet,
        chat_id: int,
        message_id: int,
        confirmation: Confirmation,
    ) -> None:
        token_lookup = await self.quotes.lookup(confirmation.target)
        if not token_lookup.available:
            await self._send(chat_id, msg.PREPARE_SALE_FAILED)
            return
        token = token_lookup.unwrap()

        raw_amount = to_base_units(confirmation.amount, token.decimals)
        raw_balance = await self.ledger.get_token_balance(wallet.account_id, confirmation.target)
        if raw_balance < raw_amount:
            await self._send(
                chat_id,
                msg.insufficient_tokens(
                    confirmation.amount,
                    from_base_units(raw_balance, token.decimals),
                    token.symbol,
                ),
            )
            return

        await self._retire_confirmation(chat_id, message_id)
        await self._execute_sale(
            wallet,
            chat_id,
            confirmation.target,
            raw_amount,
            sold=confirmation.amount,
            token_label=token.symbol,
            places=max(3, -confirmation.amount.as_tuple().exponent),
        )

    async def _execute_sale(
        self,
        wallet: UserWallet,
        chat_id: int,
        token_id: str,
        raw_amount: int,
        *,
        sold: Decimal,
        token_label: str,
        places: int,
    ) -> None:
        try:
            result = await self.sequencer.sell(wallet.credentials(), token_id, raw_amount)
        except LedgerCallFailed:
            await self._send(chat_id, msg.SALE_FAILED)
            return

        await self._send(chat_id, msg.sale_succeeded(sold, token_label, result.transaction_id, places=places))
