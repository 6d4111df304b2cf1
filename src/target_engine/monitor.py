"""One polling cycle: refresh targets, consult the daily gate, act on triggers.

The monitor owns the active :class:`TradingTargets` and the open position it
opened itself.  Market data arrives as a ready :class:`MarketSnapshot`; order
placement is delegated to an injected executor.  Without an executor the
monitor only reports triggers (alert-only mode).
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Callable, Protocol

from loguru import logger

from .ai_targets import AiTargetService
from .alerts import AlertRouter
from .models import MarketSnapshot, TradePermission, TradingStatus, TradingTargets
from .policy import TradePolicy
from .trade_limiter import TradeLimiter


class OrderExecutor(Protocol):
    def place_order(self, symbol: str, side: str, quantity: Decimal, price: Decimal) -> bool: ...


class TriggerKind(str, Enum):
    STOP_LOSS = "STOP_LOSS"
    TAKE_PROFIT = "TAKE_PROFIT"
    SELL_TARGET = "SELL_TARGET"
    BUY_TARGET = "BUY_TARGET"


@dataclass(frozen=True)
class TradeTrigger:
    kind: TriggerKind
    side: str
    price: Decimal
    quantity: Decimal


@dataclass(frozen=True)
class OpenPosition:
    entry_price: Decimal
    quantity: Decimal


@dataclass
class CycleResult:
    cycle: int
    targets: TradingTargets
    recalculated: bool
    status: TradingStatus
    permission: TradePermission
    trigger: TradeTrigger | None = None
    executed: bool = False
    blocked_reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "cycle": self.cycle,
            "recalculated": self.recalculated,
            "targets": self.targets.to_dict(),
            "status": self.status.to_dict(),
            "trigger": (
                {
                    "kind": self.trigger.kind.value,
                    "side": self.trigger.side,
                    "price": str(self.trigger.price),
                    "quantity": str(self.trigger.quantity),
                }
                if self.trigger
                else None
            ),
            "executed": self.executed,
            "blocked_reason": self.blocked_reason,
        }


class TargetMonitor:
    def __init__(
        self,
        target_service: AiTargetService,
        limiter: TradeLimiter,
        policy: TradePolicy,
        executor: OrderExecutor | None = None,
        alerts: AlertRouter | None = None,
        report_path: Path | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.target_service = target_service
        self.limiter = limiter
        self.policy = policy
        self.executor = executor
        self.alerts = alerts or AlertRouter()
        self.report_path = report_path
        self._monotonic = monotonic
        self.targets: TradingTargets | None = None
        self.position: OpenPosition | None = None
        self.cycle_count = 0
        self._last_recalc_at: float | None = None

    def _resume_reported_position(self, snapshot: MarketSnapshot) -> None:
        """Pick up a position that was open before a restart."""
        entry = snapshot.position_entry_price
        if self.position is not None or entry is None or entry <= 0:
            return
        quantity = snapshot.position_quantity
        if quantity is None:
            quantity = snapshot.account_balance * Decimal(str(self.policy.position_size_fraction)) / entry
        if quantity <= 0:
            return
        self.position = OpenPosition(entry_price=entry, quantity=quantity)
        logger.info("Resuming open position: {:.6f} @ ${:.2f}", quantity, entry)

    def _should_recalculate(self) -> bool:
        if self.targets is None or self._last_recalc_at is None:
            return True
        return self._monotonic() - self._last_recalc_at >= self.policy.ai_recalc_interval_seconds

    def refresh_targets(self, snapshot: MarketSnapshot) -> TradingTargets:
        logger.info("Recalculating trading targets...")
        self.targets = self.target_service.calculate_targets(snapshot)
        self._last_recalc_at = self._monotonic()
        return self.targets

    def detect_trigger(self, snapshot: MarketSnapshot, targets: TradingTargets) -> TradeTrigger | None:
        price = snapshot.current_price
        if self.position is not None:
            qty = self.position.quantity
            if price <= targets.stop_loss_price:
                return TradeTrigger(TriggerKind.STOP_LOSS, "SELL", price, qty)
            if price >= targets.take_profit_price:
                return TradeTrigger(TriggerKind.TAKE_PROFIT, "SELL", price, qty)
            if targets.sell_target_price is not None and price >= targets.sell_target_price:
                return TradeTrigger(TriggerKind.SELL_TARGET, "SELL", price, qty)
            return None

        if targets.buy_target_price is not None and price <= targets.buy_target_price and price > 0:
            budget = snapshot.account_balance * Decimal(str(self.policy.position_size_fraction))
            quantity = budget / price
            if quantity > 0:
                return TradeTrigger(TriggerKind.BUY_TARGET, "BUY", price, quantity)
        return None

    def run_cycle(self, snapshot: MarketSnapshot) -> CycleResult:
        self.cycle_count += 1
        logger.info("Monitoring cycle #{} for {} @ ${:.2f}", self.cycle_count, snapshot.symbol, snapshot.current_price)

        if self.cycle_count == 1:
            self._resume_reported_position(snapshot)

        recalculated = self._should_recalculate()
        targets = self.refresh_targets(snapshot) if recalculated else self.targets

        permission = self.limiter.can_trade()
        result = CycleResult(
            cycle=self.cycle_count,
            targets=targets,
            recalculated=recalculated,
            status=self.limiter.get_status(),
            permission=permission,
        )

        trigger = self.detect_trigger(snapshot, targets)
        result.trigger = trigger
        if trigger is not None:
            logger.info("{} triggered at ${:.2f}", trigger.kind.value, trigger.price)
            if trigger.kind is TriggerKind.STOP_LOSS:
                self.alerts.send(
                    "stop_loss_triggered",
                    f"Stop-loss hit for {snapshot.symbol} at {trigger.price}",
                    {"symbol": snapshot.symbol, "stop_loss": str(targets.stop_loss_price)},
                )
            self._handle_trigger(snapshot, trigger, permission, result)
            result.status = self.limiter.get_status()

        logger.info(
            "Price: ${:.2f} | SL: ${:.2f} | TP: ${:.2f} | Position: {} | {}",
            snapshot.current_price, targets.stop_loss_price, targets.take_profit_price,
            "LONG" if self.position else "NONE", result.status.summary(),
        )
        if self.report_path is not None:
            self._write_cycle_report(snapshot, result)
        return result

    def _handle_trigger(
        self,
        snapshot: MarketSnapshot,
        trigger: TradeTrigger,
        permission: TradePermission,
        result: CycleResult,
    ) -> None:
        if not permission.is_allowed:
            result.blocked_reason = "daily trade limit reached"
            logger.warning("Cannot execute {} - daily trade limit reached", trigger.kind.value)
            self.alerts.send(
                "daily_limit_reached",
                f"{trigger.kind.value} for {snapshot.symbol} blocked by the daily trade limit",
                {"symbol": snapshot.symbol, "next_trading_day": permission.next_trading_day},
            )
            return
        if self.executor is None:
            result.blocked_reason = "alert only: no order executor configured"
            return

        try:
            placed = self.executor.place_order(snapshot.symbol, trigger.side, trigger.quantity, trigger.price)
        except Exception as exc:
            logger.error("Order placement failed for {}: {}", snapshot.symbol, exc)
            result.blocked_reason = f"order failed: {exc}"
            return
        if not placed:
            result.blocked_reason = "order rejected"
            logger.warning("Order for {} was rejected", snapshot.symbol)
            return

        self.limiter.record_trade(snapshot.symbol, trigger.side, trigger.price, trigger.quantity)
        result.executed = True
        if trigger.side == "BUY":
            self.position = OpenPosition(entry_price=trigger.price, quantity=trigger.quantity)
            logger.info("BUY executed: {:.6f} @ ${:.2f}", trigger.quantity, trigger.price)
            return

        entry = self.position.entry_price if self.position else trigger.price
        pnl = (trigger.price - entry) * trigger.quantity
        self.limiter.update_pnl(self.limiter.get_status().daily_pnl + pnl)
        self.position = None
        logger.info("SELL executed: {:.6f} @ ${:.2f} | P&L: ${:.2f}", trigger.quantity, trigger.price, pnl)

    def _write_cycle_report(self, snapshot: MarketSnapshot, result: CycleResult) -> None:
        report = {
            "written_at": datetime.now(timezone.utc).isoformat(),
            "symbol": snapshot.symbol,
            "current_price": str(snapshot.current_price),
            "position": (
                {"entry_price": str(self.position.entry_price), "quantity": str(self.position.quantity)}
                if self.position
                else None
            ),
            **result.to_dict(),
        }
        try:
            self.report_path.parent.mkdir(parents=True, exist_ok=True)
            self.report_path.write_text(json.dumps(report, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not write cycle report {}: {}", self.report_path, exc)
