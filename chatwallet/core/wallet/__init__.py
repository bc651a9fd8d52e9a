"""
Wallet Module

Credential models and the per-user session store.
"""

from .models import Credentials, NewAccount, UserWallet, key_suffix
from .store import (
    FileWalletStore,
    RedisWalletStore,
    SessionStore,
    WalletStore,
    build_wallet_store,
)

__all__ = [
    "Credentials",
    "NewAccount",
    "UserWallet",
    "key_suffix",
    "WalletStore",
    "FileWalletStore",
    "RedisWalletStore",
    "SessionStore",
    "build_wallet_store",
]
