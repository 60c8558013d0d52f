from __future__ import annotations

import json
import os
import stat
from pathlib import Path

import pytest

from price_tracker.errors import CorruptStore, StoreWriteFailed
from storage.price_history import (
    PriceHistoryStore,
    PriceRecord,
    load_store,
    merge_record,
    persist_store,
)


def _record(date: str, price: float = 986.96, raw_price: float = 3.15) -> PriceRecord:
    return PriceRecord(
        price=price,
        date=date,
        timestamp=f"{date}T06:00:00.000Z",
        source="Yahoo Finance HO=F",
        raw_price=raw_price,
        raw_unit="USD/gallon",
    )


def test_load_store_missing_file_returns_empty(tmp_path: Path):
    store = load_store(tmp_path / "prices.json")

    assert store.current is None
    assert store.history == []


def test_load_store_reads_camel_case_records(tmp_path: Path):
    path = tmp_path / "prices.json"
    entry = _record("2024-03-01").to_dict()
    path.write_text(json.dumps({"current": entry, "history": [entry]}), encoding="utf-8")

    store = load_store(path)

    assert store.current == _record("2024-03-01")
    assert store.history == [_record("2024-03-01")]


def test_load_store_invalid_json_raises_corrupt_store(tmp_path: Path):
    path = tmp_path / "prices.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(CorruptStore):
        load_store(path)


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"current": None},
        {"current": None, "history": {}},
        {"current": None, "history": [{"price": 1.0}]},
        {"current": "yesterday", "history": []},
        {"current": None, "history": [dict(_record("2024-03-01").to_dict(), price="n/a")]},
    ],
)
def test_load_store_shape_mismatch_raises_corrupt_store(tmp_path: Path, payload):
    path = tmp_path / "prices.json"
    path.write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(CorruptStore):
        load_store(path)


def test_merge_record_prepends_new_date_and_sets_current():
    store = PriceHistoryStore(current=_record("2024-03-01"), history=[_record("2024-03-01")])

    merged = merge_record(store, _record("2024-03-02", price=990.0))

    assert [item.date for item in merged.history] == ["2024-03-02", "2024-03-01"]
    assert merged.current == _record("2024-03-02", price=990.0)


def test_merge_record_replaces_same_date():
    store = PriceHistoryStore(
        current=_record("2024-03-02"),
        history=[_record("2024-03-02"), _record("2024-03-01")],
    )

    replacement = _record("2024-03-02", price=1001.5, raw_price=3.1964)
    merged = merge_record(store, replacement)

    assert len(merged.history) == 2
    assert merged.history[0] == replacement
    assert merged.current == replacement


def test_merge_record_sorts_descending_and_keeps_dates_unique():
    store = PriceHistoryStore(history=[_record("2024-01-05"), _record("2024-02-10"), _record("2023-12-31")])

    merged = merge_record(store, _record("2024-01-20"))
    merged = merge_record(merged, _record("2024-01-05", price=950.0))

    dates = [item.date for item in merged.history]
    assert dates == sorted(dates, reverse=True)
    assert len(dates) == len(set(dates))
    assert merged.find("2024-01-05").price == 950.0


def test_merge_record_does_not_mutate_input():
    original = [_record("2024-03-01")]
    store = PriceHistoryStore(current=None, history=original)

    merge_record(store, _record("2024-03-02"))

    assert store.history == [_record("2024-03-01")]
    assert store.current is None


def test_persist_store_writes_pretty_json(tmp_path: Path):
    path = tmp_path / "nested" / "prices.json"
    store = merge_record(PriceHistoryStore(), _record("2024-03-01"))

    persist_store(store, path)

    text = path.read_text(encoding="utf-8")
    assert text.startswith('{\n  "current"')
    payload = json.loads(text)
    assert payload["current"]["rawPrice"] == 3.15
    assert payload["current"]["rawUnit"] == "USD/gallon"
    assert payload["history"][0]["date"] == "2024-03-01"
    assert load_store(path) == store
    assert [p.name for p in path.parent.iterdir()] == ["prices.json"]


def test_persist_store_failure_raises_store_write_failed(tmp_path: Path):
    path = tmp_path / "prices.json"
    path.mkdir()

    with pytest.raises(StoreWriteFailed):
        persist_store(PriceHistoryStore(), path)

    assert [p.name for p in tmp_path.iterdir()] == ["prices.json"]


def test_load_store_non_utf8_raises_corrupt_store(tmp_path: Path):
    path = tmp_path / "prices.json"
    path.write_bytes(b"\xff\xfe{}")

    with pytest.raises(CorruptStore):
        load_store(path)

    assert path.read_bytes() == b"\xff\xfe{}"


def test_persist_store_keeps_existing_mode(tmp_path: Path):
    path = tmp_path / "prices.json"
    persist_store(PriceHistoryStore(), path)
    os.chmod(path, 0o644)

    persist_store(merge_record(PriceHistoryStore(), _record("2024-03-01")), path)

    assert stat.S_IMODE(path.stat().st_mode) == 0o644


def test_persist_store_new_file_honours_umask(tmp_path: Path):
    path = tmp_path / "prices.json"
    previous = os.umask(0o022)
    try:
        persist_store(PriceHistoryStore(), path)
    finally:
        os.umask(previous)

    assert stat.S_IMODE(path.stat().st_mode) == 0o644
