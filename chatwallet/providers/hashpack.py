"""HashPack price oracle client; one POST returns every priced token on the network."""

import httpx
from typing import Any, Dict, List, Optional

from ..config import settings
from ..core.errors import QuoteUnavailable
from .base import PriceProvider


class HashpackPriceProvider(PriceProvider):
    """HashPack price listing for Hedera tokens.

    The endpoint returns the whole priced token list in one call; single
    assets are picked out of it by ledger id.
    """

    name = "hashpack"
    timeout_s = 15

    def __init__(
        self,
        url: Optional[str] = None,
        network: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url or settings.price_oracle_url
        self.network = network or settings.price_oracle_network
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    async def ready(self) -> bool:
        return bool(self.url)

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def get_prices(self) -> List[Dict[str, Any]]:
        """Fetch the full priced listing"""
        client = await self._get_client()
        try:
            response = await client.post(
                self.url,
                json={"network": self.network},
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise QuoteUnavailable(f"Price oracle request failed: {e}") from e

        if not isinstance(data, list):
            raise QuoteUnavailable("Price oracle returned an unexpected payload")
        return data

    async def get_asset_price(self, asset_id: str) -> Optional[Dict[str, Any]]:
        for entry in await self.get_prices():
            if isinstance(entry, dict) and entry.get("id") == asset_id:
                return entry
        return None
