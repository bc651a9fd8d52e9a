"""
Quote engine.

Looks up price, ticker and decimal precision for ledger assets and combines
two independent quotes into a cross-asset amount. Amounts stay exact
``Decimal`` values here; truncation to base units happens only when a
transaction is built.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, localcontext
from enum import Enum
from typing import Any, Dict, Optional

from ..config import settings
from ..providers.base import PriceProvider
from .errors import QuoteUnavailable


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Quote:
    """Price/symbol/decimal metadata for an asset at a point in time."""

    asset_id: str
    price_usd: Decimal
    decimals: int
    symbol: str


class QuoteStatus(str, Enum):
    FOUND = "found"
    USED_FALLBACK = "used_fallback"
    UNAVAILABLE = "unavailable"


# Returned for assets the oracle answered for but does not list.
FALLBACK_PRICE_USD = Decimal("0.1")
FALLBACK_DECIMALS = 6
FALLBACK_SYMBOL = "TEST"

# Extra significant digits kept for quotients that do not terminate
CROSS_AMOUNT_GUARD_DIGITS = 28


def fallback_quote(asset_id: str) -> Quote:
    return Quote(
        asset_id=asset_id,
        price_usd=FALLBACK_PRICE_USD,
        decimals=FALLBACK_DECIMALS,
        symbol=FALLBACK_SYMBOL,
    )


@dataclass(frozen=True)
class QuoteLookup:
    """Tagged result: ``Found(quote) | UsedFallback(quote) | Unavailable``."""

    status: QuoteStatus
    asset_id: str
    quote: Optional[Quote] = None
    reason: Optional[str] = None

    @property
    def used_fallback(self) -> bool:
        return self.status == QuoteStatus.USED_FALLBACK

    @property
    def available(self) -> bool:
        return self.quote is not None

    def unwrap(self) -> Quote:
        if self.quote is None:
            raise QuoteUnavailable(self.reason or "Quote unavailable", asset_id=self.asset_id)
        return self.quote


def compute_cross_amount(quote_from: Quote, quote_to: Quote, amount_from: Decimal) -> Decimal:
    """Amount of ``quote_to`` worth ``amount_from`` units of ``quote_from``."""
    if quote_to.price_usd <= 0:
        raise QuoteUnavailable(f"Non-positive price for {quote_to.asset_id}", asset_id=quote_to.asset_id)
    digits = sum(
        len(value.as_tuple().digits) for value in (quote_from.price_usd, amount_from, quote_to.price_usd)
    )
    with localcontext() as ctx:
        # Wide enough that the product is exact and an exact quotient is never cut short
        ctx.prec = digits + CROSS_AMOUNT_GUARD_DIGITS
        return quote_from.price_usd * amount_from / quote_to.price_usd


def _parse_listing(asset_id: str, entry: Dict[str, Any]) -> Quote:
    try:
        price = Decimal(str(entry["priceUsd"]))
        decimals = int(entry["decimals"])
    except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
        raise QuoteUnavailable(f"Malformed oracle entry for {asset_id}", asset_id=asset_id) from exc
    if not price.is_finite():
        raise QuoteUnavailable(f"Non-finite price for {asset_id}", asset_id=asset_id)
    return Quote(
        asset_id=asset_id,
        price_usd=price,
        decimals=decimals,
        symbol=str(entry.get("symbol") or asset_id),
    )


class QuoteEngine:
    """Resolves quotes through a price provider."""

    def __init__(self, provider: PriceProvider, native_asset_id: Optional[str] = None):
        self.provider = provider
        self.native_asset_id = native_asset_id or settings.native_asset_id

    async def lookup(self, asset_id: str) -> QuoteLookup:
        """Fetch a quote without raising; the caller decides how to treat fallbacks."""
        try:
            entry = await self.provider.get_asset_price(asset_id)
            if entry is None:
                logger.warning(f"Asset {asset_id} not listed by price oracle, using fallback quote")
                return QuoteLookup(QuoteStatus.USED_FALLBACK, asset_id, quote=fallback_quote(asset_id))
            return QuoteLookup(QuoteStatus.FOUND, asset_id, quote=_parse_listing(asset_id, entry))
        except QuoteUnavailable as exc:
            logger.warning(f"Quote unavailable for {asset_id}: {exc.message}")
            return QuoteLookup(QuoteStatus.UNAVAILABLE, asset_id, reason=exc.message)

    async def get_quote(self, asset_id: str) -> Quote:
        """Return a quote (possibly the fallback) or raise ``QuoteUnavailable``."""
        lookup = await self.lookup(asset_id)
        return lookup.unwrap()

    async def native_quote(self) -> Quote:
        return await self.get_quote(self.native_asset_id)
