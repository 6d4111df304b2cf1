"""Command-line entry point.

  target-engine analyze --snapshot runtime/market_snapshot.json
  target-engine status
  target-engine record BTCUSDT BUY 64000 0.01
  target-engine pnl 12.50
  target-engine watch --snapshot runtime/market_snapshot.json

``watch`` re-reads the snapshot file every cycle; whatever collects market
data is expected to keep that file current.  The file holds either a ready
snapshot (indicator fields filled in) or raw hourly ``candles`` plus the
current price, in which case indicators are computed here.
"""

from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path

from loguru import logger

from .ai_targets import AiTargetService
from .indicators import snapshot_from_feed
from .logging_config import configure_logging
from .models import MarketSnapshot
from .monitor import TargetMonitor
from .policy import TradePolicy, load_trade_policy
from .scheduler import BotScheduler
from .settings import settings
from .state_store import build_state_store
from .trade_limiter import TradeLimiter


class SnapshotFileError(Exception):
    """The snapshot file is missing or does not describe a market snapshot."""


def load_snapshot(path: Path) -> MarketSnapshot:
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise TypeError("expected a JSON object")
        if "candles" in payload:
            return snapshot_from_feed(payload)
        return MarketSnapshot.from_dict(payload)
    except (OSError, ValueError, KeyError, TypeError) as exc:
        raise SnapshotFileError(f"{path}: {exc}") from exc


def build_limiter(policy: TradePolicy) -> TradeLimiter:
    store = build_state_store(settings.state_backend, settings.trade_state_path, settings.trade_state_db_path)
    return TradeLimiter(store, max_trades_per_day=policy.max_trades_per_day)


def _print_json(payload: dict) -> None:
    print(json.dumps(payload, indent=2))


def cmd_analyze(args: argparse.Namespace, policy: TradePolicy) -> int:
    snapshot = load_snapshot(args.snapshot)
    service = AiTargetService(enabled=policy.ai_enabled and not args.no_ai)
    targets = service.calculate_targets(snapshot)
    _print_json(targets.to_dict())
    return 0


def cmd_status(args: argparse.Namespace, policy: TradePolicy) -> int:
    limiter = build_limiter(policy)
    status = limiter.get_status()
    trades = limiter.todays_trades()
    if args.json:
        _print_json({**status.to_dict(), "trades": [trade.to_dict() for trade in trades]})
    else:
        print(status.summary())
        for trade in trades:
            print(f"  {trade.timestamp:%H:%M:%S} {trade.side} {trade.quantity} {trade.symbol} @ ${trade.price}")
    return 0


def cmd_record(args: argparse.Namespace, policy: TradePolicy) -> int:
    limiter = build_limiter(policy)
    if args.force:
        record = limiter.record_trade(args.symbol, args.side, args.price, args.quantity)
    else:
        permission, record = limiter.try_record_trade(args.symbol, args.side, args.price, args.quantity)
        if record is None:
            print(
                f"Daily limit reached ({permission.trades_executed} trades). "
                f"Next trading day: {permission.next_trading_day}"
            )
            return 1
    _print_json(record.to_dict())
    return 0


def cmd_pnl(args: argparse.Namespace, policy: TradePolicy) -> int:
    limiter = build_limiter(policy)
    limiter.update_pnl(args.amount)
    print(limiter.get_status().summary())
    return 0


def cmd_watch(args: argparse.Namespace, policy: TradePolicy) -> int:
    monitor = TargetMonitor(
        target_service=AiTargetService(enabled=policy.ai_enabled),
        limiter=build_limiter(policy),
        policy=policy,
        report_path=settings.report_path,
    )
    scheduler = BotScheduler(monitor, lambda: load_snapshot(args.snapshot))

    if args.once:
        return 0 if scheduler.run_once() is not None else 1

    scheduler.run_once()
    scheduler.start()
    logger.info("Target engine watching {} (Ctrl+C to stop)", args.snapshot)
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
        scheduler.stop()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="target-engine", description="Trading targets and daily trade gating")
    parser.add_argument("--policy", type=Path, default=None, help="Trade policy YAML file")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Calculate targets for a snapshot file")
    analyze.add_argument("--snapshot", type=Path, default=settings.snapshot_path)
    analyze.add_argument("--no-ai", action="store_true", help="Skip the AI backend, use fallback targets")
    analyze.set_defaults(handler=cmd_analyze)

    status = sub.add_parser("status", help="Show today's trade limiter status")
    status.add_argument("--json", action="store_true")
    status.set_defaults(handler=cmd_status)

    record = sub.add_parser("record", help="Record an executed trade")
    record.add_argument("symbol")
    record.add_argument("side", type=str.upper, choices=["BUY", "SELL"])
    record.add_argument("price")
    record.add_argument("quantity")
    record.add_argument("--force", action="store_true", help="Record even if the daily limit is reached")
    record.set_defaults(handler=cmd_record)

    pnl = sub.add_parser("pnl", help="Set today's realized P&L")
    pnl.add_argument("amount")
    pnl.set_defaults(handler=cmd_pnl)

    watch = sub.add_parser("watch", help="Run the monitoring loop")
    watch.add_argument("--snapshot", type=Path, default=settings.snapshot_path)
    watch.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    watch.set_defaults(handler=cmd_watch)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings.log_level, settings.log_file_path)
    try:
        policy = load_trade_policy(args.policy)
        return args.handler(args, policy)
    except SnapshotFileError as exc:
        logger.error("Invalid snapshot: {}", exc)
        return 2
    except ValueError as exc:
        logger.error("{}", exc)
        return 2


if __name__ == "__main__":
    sys.exit(main())
