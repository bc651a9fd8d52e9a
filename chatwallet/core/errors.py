"""
Error Classification

Defines the error taxonomy shared by providers and the conversation layer.
Each error carries a category and, where it differs from the log message,
the text shown to the chat user.
"""

from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    """Categories of errors for user-facing decisions."""

    VALIDATION = "validation"          # Malformed identifier or amount
    INSUFFICIENT_FUNDS = "insufficient_funds"
    QUOTE = "quote"                    # Price oracle unreachable
    LEDGER = "ledger"                  # Ledger call raised or returned a failure receipt
    STORAGE = "storage"                # Credential store unreachable


class WalletBotError(Exception):
    """Base class for every error the orchestrator knows how to report."""

    category: ErrorCategory = ErrorCategory.VALIDATION

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.user_message = user_message


class ValidationError(WalletBotError):
    """Untrusted chat input did not match the expected shape."""

    category = ErrorCategory.VALIDATION

    def __init__(self, message: str, field: Optional[str] = None, value: Optional[str] = None):
        super().__init__(message)
        self.field = field
        self.value = value


class InsufficientBalance(WalletBotError):
    """Balance precondition failed before any transaction was built."""

    category = ErrorCategory.INSUFFICIENT_FUNDS

    def __init__(
        self,
        message: str = "Insufficient balance",
        required: Optional[str] = None,
        available: Optional[str] = None,
        asset: Optional[str] = None,
    ):
        super().__init__(message)
        self.required = required
        self.available = available
        self.asset = asset


class QuoteUnavailable(WalletBotError):
    """The price oracle could not be reached or returned garbage."""

    category = ErrorCategory.QUOTE

    def __init__(self, message: str = "Quote unavailable", asset_id: Optional[str] = None):
        super().__init__(message)
        self.asset_id = asset_id


class LedgerCallFailed(WalletBotError):
    """A ledger query or submission raised before producing a receipt."""

    category = ErrorCategory.LEDGER

    def __init__(self, message: str = "Ledger call failed", operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class TransactionFailed(LedgerCallFailed):
    """A submitted transaction came back with a non-success receipt status."""

    def __init__(
        self,
        status: str,
        operation: Optional[str] = None,
        transaction_id: Optional[str] = None,
    ):
        super().__init__(f"Transaction failed with status: {status}", operation=operation)
        self.status = status
        self.transaction_id = transaction_id


class StorageUnavailable(WalletBotError):
    """The credential store could not be read or written."""

    category = ErrorCategory.STORAGE

    def __init__(self, message: str = "Wallet storage unavailable"):
        super().__init__(message)
