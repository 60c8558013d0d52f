"""Quote provider backed by the yfinance library."""

from __future__ import annotations

import logging
from typing import Any, Callable

import yfinance as yf

from price_tracker.errors import UpstreamUnavailable

from .base import PriceQuote, coerce_price

LOGGER = logging.getLogger(__name__)


class YFinanceQuoteProvider:
    """Read the latest traded price from ``yfinance.Ticker.fast_info``."""

    def __init__(self, symbol: str, ticker_factory: Callable[[str], Any] = yf.Ticker) -> None:
        self.symbol = symbol
        self.ticker_factory = ticker_factory

    def fetch_quote(self) -> PriceQuote:
        LOGGER.debug("Looking up %s via yfinance", self.symbol)
        try:
            fast_info = self.ticker_factory(self.symbol).fast_info
            last_price = self._lookup(fast_info, "last_price")
            currency = self._lookup(fast_info, "currency")
            exchange = self._lookup(fast_info, "exchange")
        except Exception as exc:  # yfinance raises broad exceptions
            raise UpstreamUnavailable(f"yfinance lookup failed for {self.symbol}: {exc}") from exc

        price = coerce_price(last_price, self.symbol)
        return PriceQuote(
            price_per_unit=price,
            currency=str(currency or ""),
            symbol=self.symbol,
            exchange=str(exchange or ""),
        )

    @staticmethod
    def _lookup(fast_info: Any, key: str) -> Any:
        # fast_info behaves like a mapping but also exposes attributes.
        value = getattr(fast_info, key, None)
        if value is None and hasattr(fast_info, "get"):
            value = fast_info.get(key)
        return value


__all__ = ["YFinanceQuoteProvider"]
