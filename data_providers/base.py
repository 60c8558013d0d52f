"""Abstract interfaces shared by quote providers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from price_tracker.errors import MalformedResponse


@dataclass(frozen=True)
class PriceQuote:
    """Single price observation in the upstream unit."""

    price_per_unit: float
    currency: str
    symbol: str
    exchange: str


class QuoteProvider(Protocol):
    """Protocol describing the single-quote interface used by the fetch pipeline."""

    symbol: str

    def fetch_quote(self) -> PriceQuote:
        """Retrieve the latest quote for the configured instrument."""


def coerce_price(value: Any, symbol: str) -> float:
    """Return *value* as a positive float or raise :class:`MalformedResponse`."""
    if value is None or isinstance(value, bool):
        raise MalformedResponse(f"No price data in response for {symbol}")
    try:
        price = float(value)
    except (TypeError, ValueError) as exc:
        raise MalformedResponse(f"Non-numeric price {value!r} for {symbol}") from exc
    if price != price or price <= 0:
        raise MalformedResponse(f"No price data in response for {symbol}")
    return price


__all__ = ["PriceQuote", "QuoteProvider", "coerce_price"]
