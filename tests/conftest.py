from __future__ import annotations

import json
from pathlib import Path

import pytest

from price_tracker.config_manager import DEFAULT_SETTINGS_PATH, ConfigManager, PriceTrackerConfig


def chart_payload(price=3.15, currency="USD", symbol="HO=F", exchange="NYM"):
    meta = {"currency": currency, "symbol": symbol, "exchangeName": exchange}
    if price is not None:
        meta["regularMarketPrice"] = price
    return {"chart": {"result": [{"meta": meta}], "error": None}}


class StubProvider:
    """In-memory quote provider returning queued quotes or raising queued errors."""

    symbol = "HO=F"

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    def fetch_quote(self):
        self.calls += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture()
def settings_path(tmp_path: Path) -> Path:
    data = json.loads(DEFAULT_SETTINGS_PATH.read_text(encoding="utf-8"))
    data["storage"]["price_file"] = str(tmp_path / "data" / "prices.json")
    target = tmp_path / "default_settings.json"
    target.write_text(json.dumps(data), encoding="utf-8")
    return target


@pytest.fixture()
def tracker_config(settings_path: Path, tmp_path: Path) -> PriceTrackerConfig:
    manager = ConfigManager(default_path=settings_path, user_path=tmp_path / "missing.local.json")
    return manager.load(force_reload=True)
