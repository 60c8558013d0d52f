"""Tabular views over the stored price history."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pandas as pd

from storage.price_history import PriceHistoryStore

HISTORY_COLUMNS = ["price", "raw_price", "raw_unit", "source", "timestamp"]


@dataclass
class HistorySummary:
    entries: int
    latest: Optional[float]
    previous: Optional[float]
    change: Optional[float]
    change_pct: Optional[float]
    minimum: Optional[float]
    maximum: Optional[float]
    mean: Optional[float]


def history_frame(store: PriceHistoryStore, limit: Optional[int] = None) -> pd.DataFrame:
    """Return the history as a frame indexed by date, newest first."""
    rows = [
        {
            "date": record.date,
            "price": record.price,
            "raw_price": record.raw_price,
            "raw_unit": record.raw_unit,
            "source": record.source,
            "timestamp": record.timestamp,
        }
        for record in store.history
    ]
    if not rows:
        empty = pd.DataFrame(columns=HISTORY_COLUMNS)
        empty.index.name = "date"
        return empty

    frame = pd.DataFrame(rows)
    frame["date"] = pd.to_datetime(frame["date"])
    frame = frame.set_index("date").sort_index(ascending=False)
    if limit is not None and limit > 0:
        frame = frame.head(limit)
    return frame[HISTORY_COLUMNS]


def summarize_history(frame: pd.DataFrame) -> HistorySummary:
    if frame.empty:
        return HistorySummary(0, None, None, None, None, None, None, None)

    prices = frame["price"].astype(float)
    latest = float(prices.iloc[0])
    previous = float(prices.iloc[1]) if len(prices) > 1 else None
    change = round(latest - previous, 2) if previous is not None else None
    change_pct = (latest - previous) / previous if previous else None
    return HistorySummary(
        entries=len(frame),
        latest=latest,
        previous=previous,
        change=change,
        change_pct=change_pct,
        minimum=float(prices.min()),
        maximum=float(prices.max()),
        mean=round(float(prices.mean()), 2),
    )


def export_history(frame: pd.DataFrame, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(path, index=True, index_label="date", date_format="%Y-%m-%d")
    return path


__all__ = ["HistorySummary", "export_history", "history_frame", "summarize_history"]
