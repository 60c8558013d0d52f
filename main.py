"""CLI entry point for the gasoil price tracker."""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence

from automation.price_fetch import run_price_fetch, run_scheduled_fetch
from price_tracker.config_manager import ConfigError, ConfigManager, PriceTrackerConfig
from price_tracker.errors import PriceTrackerError
from reports.history import export_history, history_frame, summarize_history
from storage.price_history import load_store

logger = logging.getLogger("price_tracker.cli")


@dataclass
class AppContext:
    manager: ConfigManager
    config: PriceTrackerConfig


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def build_context(args: argparse.Namespace) -> AppContext:
    manager_kwargs: Dict[str, Path] = {}
    if args.defaults:
        manager_kwargs["default_path"] = Path(args.defaults)
    if args.settings:
        manager_kwargs["user_path"] = Path(args.settings)
    manager = ConfigManager(**manager_kwargs)
    config = manager.load(force_reload=True)
    return AppContext(manager=manager, config=config)


def handle_fetch(args: argparse.Namespace, ctx: AppContext) -> int:
    sources = ctx.config.data_sources
    conversion = ctx.config.conversion
    print("Starting price fetch...")
    print(f"Source: {sources.label()} via {sources.provider}")

    try:
        outcome = run_price_fetch(ctx.config)
    except PriceTrackerError as exc:
        logger.error("Error fetching price: %s", exc)
        return 1

    print(f"Raw price: {outcome.quote.price_per_unit} {conversion.raw_unit}")
    print(f"Converted price: {outcome.record.price:.2f} {conversion.target_unit}")
    if outcome.replaced_existing:
        print("Updated existing entry for today")
    else:
        print("Added new entry for today")
    print(f"Data saved to {outcome.store_path}")
    print("Price fetch completed successfully!")
    return 0


def handle_history(args: argparse.Namespace, ctx: AppContext) -> int:
    try:
        store = load_store(ctx.config.storage.price_file)
    except PriceTrackerError as exc:
        logger.error("Failed to load price history: %s", exc)
        return 1

    frame = history_frame(store, limit=args.limit)
    if frame.empty:
        print(f"No price history recorded in {ctx.config.storage.price_file}")
        return 0

    target_unit = ctx.config.conversion.target_unit
    summary = summarize_history(frame)
    print(frame[["price", "raw_price", "source"]].to_string())
    print(f"\nEntries: {summary.entries}")
    print(f"Latest: {summary.latest:.2f} {target_unit}")
    if summary.change is not None and summary.change_pct is not None:
        print(f"Change vs previous: {summary.change:+.2f} ({summary.change_pct:+.2%})")
    print(f"Range: {summary.minimum:.2f} - {summary.maximum:.2f} (mean {summary.mean:.2f})")

    if args.output:
        path = export_history(frame, Path(args.output))
        logger.info("Price history written to %s", path)
    return 0


def handle_schedule(args: argparse.Namespace, ctx: AppContext) -> int:
    if not ctx.config.automation.enabled and not args.force:
        logger.info("Price fetch automation is disabled in configuration; use --force to run anyway.")
        return 0

    if args.max_iterations is not None and args.max_iterations <= 0:
        logger.error("max-iterations must be greater than zero")
        return 1

    try:
        run_scheduled_fetch(
            ctx.config,
            run_once=args.run_once,
            max_iterations=args.max_iterations,
        )
    except PriceTrackerError as exc:
        logger.error("Scheduled price fetch failed: %s", exc)
        return 1
    except KeyboardInterrupt:  # pragma: no cover - interactive stop
        logger.info("Scheduler interrupted; exiting")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Gasoil price tracker")
    parser.add_argument("--settings", type=Path, help="Path to user settings override JSON")
    parser.add_argument("--defaults", type=Path, help="Path to alternate default settings JSON")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.set_defaults(handler=handle_fetch)

    subparsers = parser.add_subparsers(dest="command")

    fetch = subparsers.add_parser("fetch", help="Fetch today's price and update the history file")
    fetch.set_defaults(handler=handle_fetch)

    history = subparsers.add_parser("history", help="Show the stored price history")
    history.add_argument("--limit", type=int, help="Only show the most recent N entries")
    history.add_argument("--output", type=Path, help="Optional CSV path for the history table")
    history.set_defaults(handler=handle_history)

    schedule = subparsers.add_parser("schedule", help="Fetch the price once a day at the configured time")
    schedule.add_argument("--run-once", action="store_true", help="Run a single fetch immediately and exit")
    schedule.add_argument("--max-iterations", type=int, help="Limit the number of scheduled runs before exiting")
    schedule.add_argument("--force", action="store_true", help="Run even if automation is disabled in the configuration")
    schedule.set_defaults(handler=handle_schedule)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    try:
        ctx = build_context(args)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1

    return args.handler(args, ctx)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
