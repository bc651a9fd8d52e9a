"""
Wallet credential models.

One ``UserWallet`` exists per chat user. It starts empty and is populated
exactly once, when account creation succeeds.
"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_KEY_SUFFIX_RE = re.compile(r"[0-9a-fA-F]{64}")

KEY_SUFFIX_LENGTH = 64


def key_suffix(private_key: str) -> str:
    """Return the trailing 64 hex characters of an encoded private key.

    DER-encoded ED25519 keys carry the raw 32-byte seed at the end, so the
    suffix alone is enough to sign.
    """
    suffix = private_key.strip()[-KEY_SUFFIX_LENGTH:]
    if not _KEY_SUFFIX_RE.fullmatch(suffix):
        raise ValueError("Private key does not end in 64 hex characters")
    return suffix.lower()


class UserWallet(BaseModel):
    """Persisted wallet record, serialized as ``{"accountId", "privateKey"}``."""

    model_config = ConfigDict(populate_by_name=True)

    account_id: str = Field(default="", alias="accountId")
    private_key_suffix: str = Field(default="", alias="privateKey")

    @field_validator("private_key_suffix")
    @classmethod
    def _check_suffix(cls, value: str) -> str:
        if value and not _KEY_SUFFIX_RE.fullmatch(value):
            raise ValueError("privateKey must be exactly 64 hex characters")
        return value

    @property
    def is_initialized(self) -> bool:
        return bool(self.account_id)

    def credentials(self) -> "Credentials":
        if not self.is_initialized or not self.private_key_suffix:
            raise ValueError("Wallet has not been created yet")
        return Credentials(account_id=self.account_id, private_key=self.private_key_suffix)

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True)


class Credentials(BaseModel):
    """Signing identity for a single submission."""

    model_config = ConfigDict(frozen=True)

    account_id: str
    private_key: str = Field(repr=False)


class NewAccount(BaseModel):
    """Result of a successful account creation on the ledger."""

    account_id: str
    private_key: str = Field(repr=False, description="Full encoded private key, shown to the user once")
    transaction_id: Optional[str] = None

    def to_wallet(self) -> UserWallet:
        return UserWallet(account_id=self.account_id, private_key_suffix=key_suffix(self.private_key))
