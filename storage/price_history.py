"""JSON-backed price history keyed by calendar date."""

from __future__ import annotations

import json
import logging
import os
import stat
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from price_tracker.errors import CorruptStore, StoreWriteFailed

LOGGER = logging.getLogger(__name__)

_RECORD_FIELDS = {
    "price": "price",
    "date": "date",
    "timestamp": "timestamp",
    "source": "source",
    "rawPrice": "raw_price",
    "rawUnit": "raw_unit",
}


@dataclass(frozen=True)
class PriceRecord:
    """One dated entry in the price history."""

    price: float
    date: str
    timestamp: str
    source: str
    raw_price: float
    raw_unit: str

    def to_dict(self) -> Dict[str, Any]:
        return {key: getattr(self, attr) for key, attr in _RECORD_FIELDS.items()}

    @classmethod
    def from_mapping(cls, payload: Any) -> "PriceRecord":
        if not isinstance(payload, dict):
            raise CorruptStore(f"Price record must be an object, got {type(payload).__name__}")
        missing = [key for key in _RECORD_FIELDS if key not in payload]
        if missing:
            raise CorruptStore(f"Price record missing fields: {', '.join(missing)}")
        if not isinstance(payload["date"], str):
            raise CorruptStore("Price record date must be a string")
        try:
            return cls(
                price=float(payload["price"]),
                date=payload["date"],
                timestamp=str(payload["timestamp"]),
                source=str(payload["source"]),
                raw_price=float(payload["rawPrice"]),
                raw_unit=str(payload["rawUnit"]),
            )
        except (TypeError, ValueError) as exc:
            raise CorruptStore(f"Invalid price record for {payload.get('date')}: {exc}") from exc


@dataclass(frozen=True)
class PriceHistoryStore:
    """Latest price plus the dated history, newest first."""

    current: Optional[PriceRecord] = None
    history: List[PriceRecord] = field(default_factory=list)

    def find(self, date: str) -> Optional[PriceRecord]:
        for record in self.history:
            if record.date == date:
                return record
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current": self.current.to_dict() if self.current else None,
            "history": [record.to_dict() for record in self.history],
        }

    @classmethod
    def from_mapping(cls, payload: Any) -> "PriceHistoryStore":
        if not isinstance(payload, dict):
            raise CorruptStore("Price history must be a JSON object")
        history_data = payload.get("history")
        if not isinstance(history_data, list):
            raise CorruptStore("Price history is missing the 'history' list")
        current_data = payload.get("current")
        current = PriceRecord.from_mapping(current_data) if current_data is not None else None
        history = [PriceRecord.from_mapping(item) for item in history_data]
        return cls(current=current, history=history)


def load_store(path: Path) -> PriceHistoryStore:
    """Read the store at *path*, returning an empty store when the file is absent."""
    path = Path(path)
    if not path.exists():
        LOGGER.info("No price history at %s; starting fresh", path)
        return PriceHistoryStore()

    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise CorruptStore(f"Unable to read price history {path}: {exc}") from exc

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CorruptStore(f"Unable to parse price history {path}: {exc}") from exc

    store = PriceHistoryStore.from_mapping(payload)
    LOGGER.debug("Loaded %s history entries from %s", len(store.history), path)
    return store


def merge_record(store: PriceHistoryStore, record: PriceRecord) -> PriceHistoryStore:
    """Insert or replace the entry for ``record.date`` and make it current."""
    history = list(store.history)
    for index, existing in enumerate(history):
        if existing.date == record.date:
            history[index] = record
            break
    else:
        history.insert(0, record)

    history.sort(key=lambda item: item.date, reverse=True)
    return replace(store, current=record, history=history)


def _target_mode(path: Path) -> int:
    """Keep the mode of an existing store, otherwise honour the umask."""
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def persist_store(store: PriceHistoryStore, path: Path) -> Path:
    """Overwrite *path* with the serialised store."""
    path = Path(path)
    content = json.dumps(store.to_dict(), indent=2)
    tmp_name: Optional[str] = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.chmod(tmp_name, _target_mode(path))
        os.replace(tmp_name, path)
    except OSError as exc:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise StoreWriteFailed(f"Unable to write price history {path}: {exc}") from exc

    LOGGER.debug("Wrote %s history entries to %s", len(store.history), path)
    return path


__all__ = [
    "PriceRecord",
    "PriceHistoryStore",
    "load_store",
    "merge_record",
    "persist_store",
]
