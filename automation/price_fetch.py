"""Fetch-convert-persist pipeline and its daily schedule."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, time as dt_time, timezone as dt_timezone
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Callable, Optional

from zoneinfo import ZoneInfo

from data_providers.base import PriceQuote, QuoteProvider
from price_tracker.config_manager import AutomationConfig, ConversionConfig, PriceTrackerConfig
from storage.price_history import PriceRecord, load_store, merge_record, persist_store

LOGGER = logging.getLogger(__name__)

DEFAULT_GALLONS_PER_METRIC_TON = 313.32


@dataclass(slots=True)
class FetchOutcome:
    """Result of a single successful fetch run."""

    quote: PriceQuote
    record: PriceRecord
    replaced_existing: bool
    store_path: Path
    history_size: int


_TimeProvider = Callable[[], datetime]
_SleepFunction = Callable[[float], None]


def _utc_now() -> datetime:
    return datetime.now(dt_timezone.utc)


def convert(
    price_per_unit: float,
    factor: float = DEFAULT_GALLONS_PER_METRIC_TON,
    decimals: int = 2,
) -> float:
    """Convert a per-gallon price to a per-ton price, rounded half-up."""
    exact = Decimal(str(price_per_unit)) * Decimal(str(factor))
    quantum = Decimal(1).scaleb(-decimals)
    return float(exact.quantize(quantum, rounding=ROUND_HALF_UP))


def format_timestamp(moment: datetime) -> str:
    """Return *moment* as an ISO-8601 UTC string with millisecond precision."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=dt_timezone.utc)
    utc_moment = moment.astimezone(dt_timezone.utc)
    return utc_moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_record(
    quote: PriceQuote,
    converted_price: float,
    now: datetime,
    *,
    source: str,
    raw_unit: str,
) -> PriceRecord:
    timestamp = format_timestamp(now)
    return PriceRecord(
        price=converted_price,
        date=timestamp[:10],
        timestamp=timestamp,
        source=source,
        raw_price=quote.price_per_unit,
        raw_unit=raw_unit,
    )


def build_provider(config: PriceTrackerConfig) -> QuoteProvider:
    """Instantiate the quote provider named in ``data_sources.provider``."""
    sources = config.data_sources
    if sources.provider == "yfinance":
        from data_providers.yfinance_provider import YFinanceQuoteProvider

        return YFinanceQuoteProvider(sources.symbol)

    from data_providers.yahoo_chart import YahooChartProvider

    return YahooChartProvider.from_config(sources)


def run_price_fetch(
    config: PriceTrackerConfig,
    *,
    provider: Optional[QuoteProvider] = None,
    now_fn: _TimeProvider = _utc_now,
) -> FetchOutcome:
    """Fetch one quote, convert it and merge it into the price history file.

    Raises a :class:`~price_tracker.errors.PriceTrackerError` subclass on any
    failure, in which case the history file is left as it was.
    """
    provider = provider or build_provider(config)
    conversion: ConversionConfig = config.conversion
    store_path = Path(config.storage.price_file)

    LOGGER.info("Fetching %s quote", provider.symbol)
    quote = provider.fetch_quote()
    LOGGER.info("Raw price: %s %s", quote.price_per_unit, conversion.raw_unit)

    converted = convert(quote.price_per_unit, conversion.factor, conversion.decimals)
    LOGGER.info("Converted price: %s %s", converted, conversion.target_unit)

    record = build_record(
        quote,
        converted,
        now_fn(),
        source=config.data_sources.label(),
        raw_unit=conversion.raw_unit,
    )

    store = load_store(store_path)
    replaced = store.find(record.date) is not None
    updated = merge_record(store, record)
    persist_store(updated, store_path)
    LOGGER.info(
        "%s entry for %s in %s",
        "Updated existing" if replaced else "Added new",
        record.date,
        store_path,
    )

    return FetchOutcome(
        quote=quote,
        record=record,
        replaced_existing=replaced,
        store_path=store_path,
        history_size=len(updated.history),
    )


# ----------------------------------------------------------------------
# Scheduling
# ----------------------------------------------------------------------
def _parse_time(value: str) -> dt_time:
    for pattern in ("%H:%M:%S", "%H:%M"):
        try:
            parsed = datetime.strptime(value, pattern)
            return dt_time(hour=parsed.hour, minute=parsed.minute, second=parsed.second)
        except ValueError:
            continue
    raise ValueError(f"Invalid time format '{value}'. Expected HH:MM or HH:MM:SS")


def _resolve_timezone(name: str | None) -> ZoneInfo:
    tz_name = (name or "UTC").strip() or "UTC"
    return ZoneInfo(tz_name)


def calculate_next_run(now: datetime, schedule: AutomationConfig) -> datetime:
    """Return the next daily run timestamp in the same timezone as *now*."""

    if now.tzinfo is None:
        raise ValueError("'now' must be timezone aware")

    target_time = _parse_time(schedule.time)
    candidate = now.replace(
        hour=target_time.hour,
        minute=target_time.minute,
        second=target_time.second,
        microsecond=0,
    )
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def run_scheduled_fetch(
    config: PriceTrackerConfig,
    *,
    run_once: bool = False,
    max_iterations: Optional[int] = None,
    sleep_fn: _SleepFunction = time.sleep,
    now_fn: Callable[[ZoneInfo], datetime] | None = None,
    fetch_fn: Callable[[PriceTrackerConfig], FetchOutcome] = run_price_fetch,
) -> None:
    """Run the price fetch once a day at ``automation.time``.

    Runs are strictly sequential. A failed run is logged and the loop keeps
    going; with ``run_once`` the failure propagates to the caller.
    """

    timezone = _resolve_timezone(config.automation.timezone)

    def _run_job(allow_raise: bool) -> None:
        try:
            outcome = fetch_fn(config)
            LOGGER.info(
                "Stored %s for %s (%s entries)",
                outcome.record.price,
                outcome.record.date,
                outcome.history_size,
            )
        except Exception:  # pylint: disable=broad-except
            LOGGER.exception("Scheduled price fetch failed")
            if allow_raise:
                raise

    if run_once:
        _run_job(allow_raise=True)
        return

    iterations = 0
    while True:
        tz_now = now_fn(timezone) if now_fn else datetime.now(timezone)
        next_run = calculate_next_run(tz_now, config.automation)
        wait_seconds = max(0.0, (next_run - tz_now).total_seconds())
        LOGGER.info("Next price fetch scheduled for %s (%s)", next_run.isoformat(), timezone.key)
        if wait_seconds:
            sleep_fn(wait_seconds)
        _run_job(allow_raise=False)
        iterations += 1
        if max_iterations is not None and iterations >= max_iterations:
            break


__all__ = [
    "DEFAULT_GALLONS_PER_METRIC_TON",
    "FetchOutcome",
    "build_provider",
    "build_record",
    "calculate_next_run",
    "convert",
    "format_timestamp",
    "run_price_fetch",
    "run_scheduled_fetch",
]
