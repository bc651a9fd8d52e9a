"""Hedera mirror-node REST client for balance queries."""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from ..config import settings
from ..core.errors import LedgerCallFailed


logger = logging.getLogger(__name__)

TINYBARS_PER_HBAR = Decimal(10) ** 8


class MirrorNodeProvider:
    """Read-only view of accounts via ``/api/v1`` endpoints."""

    name = "mirror_node"
    timeout_s = 15

    def __init__(self, base_url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self.base_url = (base_url or settings.mirror_node_url).rstrip("/")
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.get(f"{self.base_url}{path}", params=params)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise LedgerCallFailed(f"Mirror node request {path} failed: {e}", operation="balance") from e

    async def get_native_balance(self, account_id: str) -> Decimal:
        data = await self._get("/api/v1/balances", params={"account.id": account_id})
        balances = data.get("balances") or []
        for entry in balances:
            if entry.get("account") == account_id:
                return Decimal(int(entry.get("balance", 0))) / TINYBARS_PER_HBAR
        logger.info(f"Mirror node has no balance entry for {account_id}")
        return Decimal(0)

    async def get_token_balance(self, account_id: str, token_id: str) -> int:
        data = await self._get(
            f"/api/v1/accounts/{account_id}/tokens",
            params={"token.id": token_id},
        )
        for entry in data.get("tokens") or []:
            if entry.get("token_id") == token_id:
                return int(entry.get("balance", 0))
        return 0
