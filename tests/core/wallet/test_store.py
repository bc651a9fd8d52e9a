"""
Tests for the session store and its backends.
"""

import json
import stat
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from chatwallet.core.errors import StorageUnavailable
from chatwallet.core.wallet.models import NewAccount, UserWallet, key_suffix
from chatwallet.core.wallet.store import FileWalletStore, RedisWalletStore, SessionStore


KEY = "ab" * 32


# =============================================================================
# Models
# =============================================================================

class TestWalletModels:

    def test_key_suffix_takes_last_64_hex(self):
        der = "302e020100300506032b657004220420" + "CD" * 32

        assert key_suffix(der) == "cd" * 32

    def test_key_suffix_rejects_short_keys(self):
        with pytest.raises(ValueError):
            key_suffix("abc123")

    def test_record_uses_persisted_names(self):
        wallet = UserWallet(account_id="0.0.5", private_key_suffix=KEY)

        assert wallet.to_record() == {"accountId": "0.0.5", "privateKey": KEY}
        assert UserWallet.model_validate(wallet.to_record()) == wallet

    def test_invalid_suffix_rejected(self):
        with pytest.raises(ValueError):
            UserWallet(account_id="0.0.5", private_key_suffix="xyz")

    def test_new_account_to_wallet(self):
        account = NewAccount(account_id="0.0.9", private_key="302e" + KEY)

        assert account.to_wallet() == UserWallet(account_id="0.0.9", private_key_suffix=KEY)

    def test_credentials_hide_key_in_repr(self):
        credentials = UserWallet(account_id="0.0.5", private_key_suffix=KEY).credentials()

        assert KEY not in repr(credentials)

    def test_empty_wallet_has_no_credentials(self):
        with pytest.raises(ValueError):
            UserWallet().credentials()


# =============================================================================
# File backend
# =============================================================================

class TestFileWalletStore:

    @pytest.mark.asyncio
    async def test_get_or_create_persists_empty_record(self, tmp_path):
        sessions = SessionStore(FileWalletStore(tmp_path))

        wallet = await sessions.get_or_create(7)

        assert wallet.is_initialized is False
        assert json.loads((tmp_path / "user_7.json").read_text()) == {"accountId": "", "privateKey": ""}

    @pytest.mark.asyncio
    async def test_persist_round_trip(self, tmp_path):
        sessions = SessionStore(FileWalletStore(tmp_path))

        await sessions.persist(7, UserWallet(account_id="0.0.5", private_key_suffix=KEY))

        assert await sessions.has_wallet(7) is True
        assert (await sessions.get_or_create(7)).private_key_suffix == KEY
        mode = stat.S_IMODE((tmp_path / "user_7.json").stat().st_mode)
        assert mode == 0o600
        assert list(tmp_path.glob("*.tmp")) == []

    @pytest.mark.asyncio
    async def test_corrupt_file_is_storage_error(self, tmp_path):
        (tmp_path / "user_7.json").write_text("{not json")
        sessions = SessionStore(FileWalletStore(tmp_path))

        with pytest.raises(StorageUnavailable):
            await sessions.get_or_create(7)

    @pytest.mark.asyncio
    async def test_invalid_record_is_storage_error(self, tmp_path):
        (tmp_path / "user_7.json").write_text(json.dumps({"accountId": "0.0.5", "privateKey": "short"}))
        sessions = SessionStore(FileWalletStore(tmp_path))

        with pytest.raises(StorageUnavailable):
            await sessions.get_or_create(7)


# =============================================================================
# Redis backend
# =============================================================================

class TestRedisWalletStore:

    @pytest.mark.asyncio
    async def test_records_stored_as_json(self):
        client = AsyncMock()
        client.get.return_value = json.dumps({"accountId": "0.0.5", "privateKey": KEY})
        sessions = SessionStore(RedisWalletStore(client=client))

        wallet = await sessions.get_or_create(7)
        await sessions.persist(7, wallet)

        client.get.assert_awaited_once_with("user_7")
        client.set.assert_awaited_once_with("user_7", json.dumps({"accountId": "0.0.5", "privateKey": KEY}))

    @pytest.mark.asyncio
    async def test_connection_error_is_storage_error(self):
        client = AsyncMock()
        client.get.side_effect = RedisConnectionError("refused")
        sessions = SessionStore(RedisWalletStore(client=client))

        with pytest.raises(StorageUnavailable):
            await sessions.get_or_create(7)

    @pytest.mark.asyncio
    async def test_close_releases_client(self):
        client = AsyncMock()
        store = RedisWalletStore(client=client)

        await store.close()

        client.aclose.assert_awaited_once()
