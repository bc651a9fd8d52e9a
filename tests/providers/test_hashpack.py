import json

import httpx
import pytest

from chatwallet.core.errors import QuoteUnavailable
from chatwallet.providers.hashpack import HashpackPriceProvider


LISTING = [
    {"id": "0.0.1456986", "priceUsd": 0.05, "decimals": 8, "symbol": "HBAR"},
    {"id": "0.0.1234", "priceUsd": 0.01, "decimals": 6, "symbol": "TKN"},
]


def _provider(handler) -> HashpackPriceProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HashpackPriceProvider(url="https://prices.test/prices", network="mainnet", client=client)


@pytest.mark.asyncio
async def test_posts_network_and_picks_asset():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=LISTING)

    provider = _provider(handler)

    entry = await provider.get_asset_price("0.0.1234")

    assert entry["symbol"] == "TKN"
    assert seen == {"method": "POST", "body": {"network": "mainnet"}}
    await provider.close()


@pytest.mark.asyncio
async def test_unlisted_asset_returns_none():
    provider = _provider(lambda request: httpx.Response(200, json=LISTING))

    assert await provider.get_asset_price("0.0.4321") is None


@pytest.mark.asyncio
async def test_http_error_raises_quote_unavailable():
    provider = _provider(lambda request: httpx.Response(502, text="bad gateway"))

    with pytest.raises(QuoteUnavailable):
        await provider.get_asset_price("0.0.1234")


@pytest.mark.asyncio
async def test_unexpected_payload_raises_quote_unavailable():
    provider = _provider(lambda request: httpx.Response(200, json={"error": "maintenance"}))

    with pytest.raises(QuoteUnavailable):
        await provider.get_prices()
