"""
Shared fakes for the wallet bot tests.

The fakes record every outbound call so tests can assert on what the user
saw and on exactly which ledger steps were submitted.
"""

import asyncio
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union
from unittest.mock import AsyncMock

import pytest

from chatwallet.cache import ConfirmationGuard
from chatwallet.core.conversation.orchestrator import WalletBot
from chatwallet.core.errors import QuoteUnavailable
from chatwallet.core.execution.models import LedgerReceipt, TransactionStep
from chatwallet.core.execution.sequencer import TransactionSequencer
from chatwallet.core.quote import QuoteEngine
from chatwallet.core.wallet.models import Credentials, NewAccount
from chatwallet.core.wallet.store import SessionStore, WalletStore
from chatwallet.providers.base import ChatTransport, LedgerProvider, PriceProvider
from chatwallet.types.telegram import Update


NATIVE_ID = "0.0.1456986"
POOL_ID = "0.0.3045981"
TOKEN_ID = "0.0.1234"
USER_ID = 42
ACCOUNT_ID = "0.0.5005"
KEY_SUFFIX = "ab" * 32
FIXED_NOW = 1_700_000_000


# =============================================================================
# Fakes
# =============================================================================

class FakeTransport(ChatTransport):
    """Records every outbound chat call."""

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self._next_id = 1000

    def _message(self) -> Dict[str, Any]:
        self._next_id += 1
        return {"message_id": self._next_id}

    async def send_message(self, chat_id, text, *, reply_markup=None, parse_mode=None):
        self.calls.append({
            "method": "send_message",
            "chat_id": chat_id,
            "text": text,
            "reply_markup": reply_markup,
            "parse_mode": parse_mode,
        })
        return self._message()

    async def send_photo(self, chat_id, photo, *, caption=None):
        self.calls.append({"method": "send_photo", "chat_id": chat_id, "photo": photo, "caption": caption})
        return self._message()

    async def send_document(
        self,
        chat_id,
        document,
        *,
        filename,
        content_type="application/octet-stream",
        caption=None,
        parse_mode=None,
    ):
        message = self._message()
        self.calls.append({
            "method": "send_document",
            "chat_id": chat_id,
            "document": document,
            "filename": filename,
            "content_type": content_type,
            "caption": caption,
            "message_id": message["message_id"],
        })
        return message

    async def delete_message(self, chat_id, message_id):
        self.calls.append({"method": "delete_message", "chat_id": chat_id, "message_id": message_id})

    async def answer_callback(self, callback_id, text=None):
        self.calls.append({"method": "answer_callback", "callback_id": callback_id, "text": text})

    def was_deleted(self, chat_id: int, message_id: int) -> bool:
        return any(
            call["chat_id"] == chat_id and call["message_id"] == message_id
            for call in self.by_method("delete_message")
        )

    def by_method(self, method: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["method"] == method]

    @property
    def texts(self) -> List[str]:
        return [call["text"] for call in self.by_method("send_message")]

    def last_buttons(self) -> List[str]:
        """callback_data of the most recent inline keyboard."""
        for call in reversed(self.by_method("send_message")):
            markup = call.get("reply_markup") or {}
            if "inline_keyboard" in markup:
                return [button["callback_data"] for row in markup["inline_keyboard"] for button in row]
        return []


class FakeLedger(LedgerProvider):
    """Scripted ledger: balances are preset, step outcomes keyed by step label."""

    name = "fake"

    def __init__(self):
        self.native_balances: Dict[str, Decimal] = {}
        self.token_balances: Dict[tuple, int] = {}
        self.outcomes: Dict[str, Union[str, Exception]] = {}
        self.submitted: List[TransactionStep] = []
        self.signers: List[Credentials] = []
        self.new_account = NewAccount(
            account_id="0.0.7007",
            private_key="302e020100300506032b657004220420" + "cd" * 32,
            transaction_id="0.0.2@1700000000.000000001",
        )
        self.create_account_error: Optional[Exception] = None
        self.created = 0

    async def ready(self) -> bool:
        return True

    async def create_account(self) -> NewAccount:
        self.created += 1
        if self.create_account_error is not None:
            raise self.create_account_error
        return self.new_account

    async def get_native_balance(self, account_id: str) -> Decimal:
        return self.native_balances.get(account_id, Decimal(0))

    async def get_token_balance(self, account_id: str, token_id: str) -> int:
        return self.token_balances.get((account_id, token_id), 0)

    async def submit(self, step: TransactionStep, signer: Credentials) -> LedgerReceipt:
        self.submitted.append(step)
        self.signers.append(signer)
        await asyncio.sleep(0)
        outcome = self.outcomes.get(step.label, "SUCCESS")
        if isinstance(outcome, Exception):
            raise outcome
        return LedgerReceipt(status=outcome, transaction_id=f"0.0.5005@{len(self.submitted)}")

    @property
    def labels(self) -> List[str]:
        return [step.label for step in self.submitted]


class StaticPriceProvider(PriceProvider):
    """Serves a fixed listing; ``fail`` simulates an unreachable oracle."""

    name = "static"

    def __init__(self, entries: Optional[List[Dict[str, Any]]] = None):
        self.entries = entries or []
        self.fail = False

    async def ready(self) -> bool:
        return True

    async def get_asset_price(self, asset_id: str) -> Optional[Dict[str, Any]]:
        if self.fail:
            raise QuoteUnavailable("oracle down")
        for entry in self.entries:
            if entry["id"] == asset_id:
                return entry
        return None


class InMemoryWalletStore(WalletStore):
    def __init__(self):
        self.records: Dict[str, Dict[str, Any]] = {}

    async def get(self, key):
        record = self.records.get(key)
        return dict(record) if record is not None else None

    async def set(self, key, record):
        self.records[key] = dict(record)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def prices() -> StaticPriceProvider:
    return StaticPriceProvider([
        {"id": NATIVE_ID, "priceUsd": 0.05, "decimals": 8, "symbol": "HBAR"},
        {"id": TOKEN_ID, "priceUsd": 0.01, "decimals": 6, "symbol": "TKN"},
    ])


@pytest.fixture
def wallet_store() -> InMemoryWalletStore:
    return InMemoryWalletStore()


@pytest.fixture
def sessions(wallet_store: InMemoryWalletStore) -> SessionStore:
    return SessionStore(wallet_store)


@pytest.fixture
def sequencer(ledger: FakeLedger) -> TransactionSequencer:
    return TransactionSequencer(
        ledger,
        native_asset_id=NATIVE_ID,
        native_decimals=8,
        pool_contract_id=POOL_ID,
        swap_gas_limit=1_120_000,
        approve_gas_limit=854_241,
        deadline_minutes=20,
        transfer_memo="Telegram Bot Withdrawal",
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def bot(transport, sessions, ledger, prices, sequencer) -> WalletBot:
    return WalletBot(
        transport=transport,
        sessions=sessions,
        ledger=ledger,
        quotes=QuoteEngine(prices, native_asset_id=NATIVE_ID),
        sequencer=sequencer,
        guard=ConfirmationGuard(3600),
        native_symbol="HBAR",
        min_native_balance=Decimal("0.1"),
        sensitive_message_ttl=300,
        sleep=AsyncMock(),
    )


@pytest.fixture
def funded_user(wallet_store: InMemoryWalletStore, ledger: FakeLedger):
    """User 42 owns account 0.0.5005 holding 10 HBAR."""
    wallet_store.records[f"user_{USER_ID}"] = {"accountId": ACCOUNT_ID, "privateKey": KEY_SUFFIX}
    ledger.native_balances[ACCOUNT_ID] = Decimal("10")
    return USER_ID


@pytest.fixture
def text_update():
    counter = {"update_id": 0}

    def build(text: str, user_id: int = USER_ID) -> Update:
        counter["update_id"] += 1
        return Update.model_validate({
            "update_id": counter["update_id"],
            "message": {
                "message_id": 500 + counter["update_id"],
                "chat": {"id": user_id, "type": "private"},
                "from": {"id": user_id, "first_name": "Test"},
                "text": text,
            },
        })

    return build


@pytest.fixture
def callback_update():
    counter = {"update_id": 100}

    def build(data: str, message_id: int = 77, user_id: int = USER_ID) -> Update:
        counter["update_id"] += 1
        return Update.model_validate({
            "update_id": counter["update_id"],
            "callback_query": {
                "id": f"cb-{counter['update_id']}",
                "from": {"id": user_id, "first_name": "Test"},
                "message": {"message_id": message_id, "chat": {"id": user_id, "type": "private"}},
                "data": data,
            },
        })

    return build
