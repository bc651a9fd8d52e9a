"""
Per-user credential storage.

``SessionStore`` is what the conversation layer talks to; the backends only
know how to read and write one JSON record per ``user_<id>`` key.
"""

import asyncio
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError
from pydantic import ValidationError as ModelValidationError

from ...config import settings
from ..errors import StorageUnavailable
from .models import UserWallet


logger = logging.getLogger(__name__)


def _user_key(user_id: int) -> str:
    return f"user_{user_id}"


class WalletStore(ABC):
    """Raw key-value backend for wallet records."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the stored record or None"""
        pass

    @abstractmethod
    async def set(self, key: str, record: Dict[str, Any]) -> None:
        """Overwrite the stored record"""
        pass

    async def close(self) -> None:
        return None


class FileWalletStore(WalletStore):
    """One JSON file per key under a directory, replaced atomically on write."""

    def __init__(self, directory: Optional[Path] = None):
        self.directory = Path(directory or settings.wallet_store_path)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def _read(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._path(key)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def _write(self, key: str, record: Dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(record, handle)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self._path(key))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, record: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._write, key, record)


class RedisWalletStore(WalletStore):
    """Wallet records stored as JSON strings in Redis."""

    def __init__(self, url: Optional[str] = None, client: Optional[Any] = None):
        self._client = client or redis.from_url(url or settings.redis_url, encoding="utf-8", decode_responses=True)

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        payload = await self._client.get(key)
        if not payload:
            return None
        return json.loads(payload)

    async def set(self, key: str, record: Dict[str, Any]) -> None:
        await self._client.set(key, json.dumps(record))

    async def close(self) -> None:
        await self._client.aclose()


def build_wallet_store() -> WalletStore:
    """Pick the backend from settings: Redis when configured, JSON files otherwise."""
    if settings.redis_url:
        logger.info("Using Redis wallet store")
        return RedisWalletStore()
    logger.info(f"Using file wallet store at {settings.wallet_store_path}")
    return FileWalletStore()


class SessionStore:
    """
    Maps chat users to their wallet credentials.

    Every backend failure surfaces as ``StorageUnavailable``.
    """

    def __init__(self, backend: WalletStore):
        self.backend = backend

    async def get_or_create(self, user_id: int) -> UserWallet:
        """Return the user's wallet, persisting an empty record on first access."""
        key = _user_key(user_id)
        try:
            record = await self.backend.get(key)
        except (OSError, ValueError, RedisError) as exc:
            logger.error(f"Failed to read wallet record {key}: {exc}")
            raise StorageUnavailable(f"Could not read {key}") from exc

        if record is None:
            wallet = UserWallet()
            await self.persist(user_id, wallet)
            return wallet

        try:
            return UserWallet.model_validate(record)
        except ModelValidationError as exc:
            logger.error(f"Corrupt wallet record {key}: {exc.error_count()} validation errors")
            raise StorageUnavailable(f"Corrupt record {key}") from exc

    async def persist(self, user_id: int, wallet: UserWallet) -> None:
        key = _user_key(user_id)
        try:
            await self.backend.set(key, wallet.to_record())
        except (OSError, ValueError, RedisError) as exc:
            logger.error(f"Failed to write wallet record {key}: {exc}")
            raise StorageUnavailable(f"Could not write {key}") from exc

    async def has_wallet(self, user_id: int) -> bool:
        wallet = await self.get_or_create(user_id)
        return wallet.is_initialized

    async def close(self) -> None:
        await self.backend.close()
