"""Command line interface for the put watcher."""

from __future__ import annotations

import argparse
import json
import logging
import time
from typing import Optional, Sequence

import pandas as pd

from putwatch.config import build_service, get_settings
from putwatch.errors import ConfigurationError, PutWatchError
from putwatch.service import PutWatchService
from putwatch.storage.base import HistoricalContract, SnapshotBundle

LOGGER = logging.getLogger("putwatch.cli")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Keep a ranked view of short-dated puts up to date")
    parser.add_argument("--env", type=str, default=None, help="Configuration environment (default: APP_ENV or dev)")
    parser.add_argument("--log-level", type=str, default="INFO", help="Logging level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("tick", help="Run one scheduled refresh")

    run = subparsers.add_parser("run", help="Tick on a fixed interval until interrupted")
    run.add_argument("--interval", type=float, default=None, help="Seconds between ticks (default from config)")
    run.add_argument(
        "--iterations",
        type=int,
        default=0,
        help="Stop after this many ticks; 0 runs until interrupted",
    )

    track = subparsers.add_parser("track", help="Start tracking a symbol")
    track.add_argument("symbol")
    track.add_argument("--preferred", action="store_true", help="Register in the preferred tier")

    untrack = subparsers.add_parser("untrack", help="Stop refreshing a symbol (history is kept)")
    untrack.add_argument("symbol")

    subparsers.add_parser("status", help="Print scheduler status as JSON")

    show = subparsers.add_parser("show", help="Print the latest ranked contracts for a symbol")
    show.add_argument("symbol")
    show.add_argument("--top", type=int, default=10, help="Number of rows to display")

    refresh = subparsers.add_parser("refresh", help="Refresh one symbol now without moving the cursor")
    refresh.add_argument("symbol")

    top = subparsers.add_parser("top", help="Print the best-scoring contracts seen over a trailing window")
    top.add_argument("symbol")
    top.add_argument("--days", type=int, default=30, help="Trailing window in days")
    top.add_argument("--limit", type=int, default=10, help="Number of rows to display")

    snapshot = subparsers.add_parser("snapshot", help="Print one stored snapshot by id")
    snapshot.add_argument("snapshot_id")
    snapshot.add_argument("--top", type=int, default=10, help="Number of rows to display")
    return parser


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def _bundle_frame(bundle: SnapshotBundle, limit: int) -> pd.DataFrame:
    rows = []
    for item in bundle.contracts[:limit]:
        contract = item.contract
        rows.append(
            {
                "contract": contract.contract_name,
                "expiry": contract.expiration_date,
                "dte": item.days_to_expiry,
                "strike": contract.strike,
                "bid": contract.bid,
                "ask": contract.ask,
                "mid": contract.to_contract().mid_price,
                "iv": contract.implied_volatility,
                "score": item.score.total if item.score else None,
                "class": item.classification,
                "annual%": item.annualized_return,
                "yield": item.return_class,
            }
        )
    return pd.DataFrame(rows)


def _display(bundle: Optional[SnapshotBundle], missing: str, limit: int) -> None:
    if bundle is None:
        print(missing)
        return
    snapshot = bundle.snapshot
    print(
        f"{snapshot.symbol} @ {snapshot.price:.2f} fetched {snapshot.fetched_at.isoformat()} "
        f"({snapshot.source}, top score {bundle.top_score:.2f})"
    )
    frame = _bundle_frame(bundle, limit)
    if frame.empty:
        print("No contracts in the latest snapshot.")
        return
    with pd.option_context("display.max_columns", None, "display.width", 160):
        print(frame.to_string(index=False))


def _top_frame(items: Sequence[HistoricalContract]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "fetched": item.snapshot.fetched_at.isoformat(),
                "price": item.snapshot.price,
                "contract": item.contract.contract_name,
                "expiry": item.contract.expiration_date,
                "strike": item.contract.strike,
                "bid": item.contract.bid,
                "score": item.score.total,
                "class": item.score.to_score().classification,
            }
            for item in items
        ]
    )


def _run_loop(service: PutWatchService, interval: float, iterations: int) -> int:
    completed = 0
    while iterations <= 0 or completed < iterations:
        try:
            outcome = service.scheduler.tick()
        except ConfigurationError:
            LOGGER.exception("Configuration error, stopping")
            return 2
        except PutWatchError:
            LOGGER.exception("Tick failed, continuing with the next interval")
        else:
            if outcome is None:
                status = service.scheduler.status()
                if not status.market_open and status.next_open is not None:
                    LOGGER.info(f"Market closed; next open at {status.next_open.isoformat()}")
        completed += 1
        if iterations <= 0 or completed < iterations:
            time.sleep(interval)
    return 0


def run_from_args(argv: Sequence[str] | None = None, *, service: Optional[PutWatchService] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)

    try:
        settings = service.settings if service is not None else get_settings(args.env)
        service = service or build_service(settings)
    except (ConfigurationError, FileNotFoundError) as exc:
        LOGGER.error(f"Unable to start: {exc}")
        return 2

    if args.command == "tick":
        outcome = service.scheduler.tick()
        print(json.dumps(outcome.to_dict() if outcome else None, indent=2))
        return 0 if outcome is None or outcome.success else 1
    if args.command == "run":
        interval = args.interval if args.interval is not None else settings.scheduler.interval_seconds
        try:
            return _run_loop(service, interval, args.iterations)
        except KeyboardInterrupt:
            LOGGER.info("Interrupted, exiting")
            return 0
    if args.command == "track":
        tracked = service.track(args.symbol, preferred=args.preferred)
        print(json.dumps(tracked.model_dump(mode="json"), indent=2))
        return 0
    if args.command == "untrack":
        removed = service.untrack(args.symbol)
        print(f"{args.symbol.upper()} {'deactivated' if removed else 'was not active'}")
        return 0
    if args.command == "status":
        print(json.dumps(service.get_scheduler_status().to_dict(), indent=2, default=str))
        return 0
    if args.command == "show":
        _display(service.get_latest_ranked(args.symbol), f"No snapshot stored for {args.symbol.upper()} yet.", args.top)
        return 0
    if args.command == "snapshot":
        bundle = service.get_snapshot(args.snapshot_id)
        _display(bundle, f"No snapshot with id {args.snapshot_id}.", args.top)
        return 0 if bundle is not None else 1
    if args.command == "top":
        frame = _top_frame(service.get_top_contracts(args.symbol, days=args.days, limit=args.limit))
        if frame.empty:
            print(f"No scored contracts for {args.symbol.upper()} in the last {args.days} days.")
            return 0
        with pd.option_context("display.max_columns", None, "display.width", 160):
            print(frame.to_string(index=False))
        return 0
    if args.command == "refresh":
        outcome = service.trigger_refresh(args.symbol)
        print(json.dumps(outcome.to_dict(), indent=2))
        return 0 if outcome.success else 1

    parser.error(f"Unknown command: {args.command}")
    return 2


def main(argv: Sequence[str] | None = None) -> int:
    try:
        return run_from_args(argv)
    except PutWatchError as exc:
        LOGGER.error(str(exc))
        return 1


__all__ = ["build_parser", "main", "run_from_args"]
