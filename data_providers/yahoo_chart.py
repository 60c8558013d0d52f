"""Yahoo Finance chart endpoint quote provider."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from price_tracker.config_manager import DataSourcesConfig
from price_tracker.errors import MalformedResponse, UpstreamUnavailable

from .base import PriceQuote, coerce_price

LOGGER = logging.getLogger(__name__)


class YahooChartProvider:
    """Fetch the latest quote for one instrument from the v8 chart API."""

    def __init__(
        self,
        url: str,
        symbol: str,
        user_agent: str,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.symbol = symbol
        self.timeout = timeout
        self.headers = {
            "User-Agent": user_agent,
            "Accept": "application/json",
        }
        self.session = session or requests.Session()

    @classmethod
    def from_config(
        cls,
        sources: DataSourcesConfig,
        session: Optional[requests.Session] = None,
    ) -> "YahooChartProvider":
        return cls(
            url=sources.resolved_url(),
            symbol=sources.symbol,
            user_agent=sources.user_agent,
            timeout=sources.timeout,
            session=session,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def fetch_quote(self) -> PriceQuote:
        """Issue a single GET and parse the quote from the response body."""
        LOGGER.debug("Requesting %s", self.url)
        try:
            response = self.session.get(self.url, headers=self.headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise UpstreamUnavailable(f"Request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponse(f"Failed to parse response: {exc}") from exc

        return self._parse_payload(payload)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _parse_payload(self, payload: Any) -> PriceQuote:
        meta = self._extract_meta(payload)
        price = coerce_price(meta.get("regularMarketPrice"), self.symbol)
        quote = PriceQuote(
            price_per_unit=price,
            currency=str(meta.get("currency") or ""),
            symbol=str(meta.get("symbol") or self.symbol),
            exchange=str(meta.get("exchangeName") or ""),
        )
        LOGGER.debug("Parsed quote %s", quote)
        return quote

    @staticmethod
    def _extract_meta(payload: Any) -> Dict[str, Any]:
        if not isinstance(payload, dict):
            raise MalformedResponse("Invalid API response structure")
        chart = payload.get("chart")
        if not isinstance(chart, dict):
            raise MalformedResponse("Invalid API response structure")
        results = chart.get("result")
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            error = chart.get("error")
            detail = f": {error.get('description')}" if isinstance(error, dict) else ""
            raise MalformedResponse(f"Invalid API response structure{detail}")
        meta = results[0].get("meta")
        if not isinstance(meta, dict):
            raise MalformedResponse("Invalid API response structure")
        return meta


__all__ = ["YahooChartProvider"]
