from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, Optional

from ..core.execution.models import LedgerReceipt, TransactionStep
from ..core.wallet.models import Credentials, NewAccount


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: int = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    async def close(self) -> None:
        """Release pooled connections"""
        return None


class PriceProvider(Provider):
    """Provider for token price data"""

    @abstractmethod
    async def get_asset_price(self, asset_id: str) -> Optional[Dict[str, Any]]:
        """Return the oracle entry (priceUsd, decimals, symbol) or None when not listed"""
        pass


class LedgerProvider(Provider):
    """Provider for account creation, balances and transaction submission"""

    @abstractmethod
    async def create_account(self) -> NewAccount:
        """Create and fund a new account owned by a freshly generated key"""
        pass

    @abstractmethod
    async def get_native_balance(self, account_id: str) -> Decimal:
        """Native balance in whole units (HBAR)"""
        pass

    @abstractmethod
    async def get_token_balance(self, account_id: str, token_id: str) -> int:
        """Token balance in base units; 0 when the account holds none"""
        pass

    @abstractmethod
    async def submit(self, step: TransactionStep, signer: Credentials) -> LedgerReceipt:
        """Sign, submit and wait for the receipt of a single step"""
        pass


class ChatTransport(ABC):
    """Outbound side of the chat platform"""

    @abstractmethod
    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        reply_markup: Optional[Dict[str, Any]] = None,
        parse_mode: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Send a text message, returning the platform's message object"""
        pass

    @abstractmethod
    async def send_photo(self, chat_id: int, photo: bytes, *, caption: Optional[str] = None) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def send_document(
        self,
        chat_id: int,
        document: bytes,
        *,
        filename: str,
        content_type: str = "application/octet-stream",
        caption: Optional[str] = None,
        parse_mode: Optional[str] = None,
    ) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def delete_message(self, chat_id: int, message_id: int) -> None:
        pass

    @abstractmethod
    async def answer_callback(self, callback_id: str, text: Optional[str] = None) -> None:
        pass
