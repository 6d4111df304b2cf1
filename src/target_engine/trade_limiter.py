"""Daily trade gate: at most ``max_trades_per_day`` executions per UTC day.

Per calendar day the limiter moves Empty -> OneTradeDone -> LimitReached as
trades are recorded.  There is no explicit rollover event: whenever the clock
shows a different date than the stored state, the day is treated as empty,
and the next write starts a fresh record.

``record_trade`` does not check the cap; callers consult ``can_trade`` first.
``try_record_trade`` does both under the limiter's lock for callers that may
run concurrently.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable

from loguru import logger

from .models import (
    Allowed,
    DailyLimitReached,
    DailyTradingState,
    TradePermission,
    TradeRecord,
    TradingStatus,
    to_decimal,
)
from .state_store import StateStore, StateStoreError


DEFAULT_MAX_TRADES_PER_DAY = 2


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TradeLimiter:
    def __init__(
        self,
        store: StateStore,
        max_trades_per_day: int = DEFAULT_MAX_TRADES_PER_DAY,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if max_trades_per_day < 1:
            raise ValueError("max_trades_per_day must be at least 1")
        self.store = store
        self.max_trades_per_day = max_trades_per_day
        self._clock = clock
        self._lock = threading.RLock()
        self._state = DailyTradingState.new_for(self._today())
        self._load_state()

    # ── clock helpers ──

    def _now(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            return now.replace(tzinfo=timezone.utc)
        return now.astimezone(timezone.utc)

    def _today(self) -> str:
        return self._now().strftime("%Y-%m-%d")

    def _next_trading_day(self) -> str:
        return (self._now() + timedelta(days=1)).strftime("%Y-%m-%d")

    # ── persistence ──

    def _load_state(self) -> None:
        today = self._today()
        try:
            state = self.store.load()
        except StateStoreError as exc:
            logger.warning("Ignoring unreadable trade limiter state: {}", exc)
            state = None

        if state is not None and state.date == today:
            self._state = state
            logger.info("Loaded trading state for today: {} trades executed", len(state.trades_today))
            return
        if state is not None:
            logger.info("New trading day detected ({} -> {}), resetting state", state.date, today)

        self._state = DailyTradingState.new_for(today)
        self._save_state()

    def _save_state(self) -> None:
        try:
            self.store.save(self._state)
        except StateStoreError as exc:
            logger.warning("Failed to save trade limiter state: {}", exc)

    # ── gate ──

    def can_trade(self) -> TradePermission:
        with self._lock:
            if self._state.date != self._today():
                return Allowed(is_first_trade=True, trades_remaining=self.max_trades_per_day)

            count = len(self._state.trades_today)
            if count >= self.max_trades_per_day:
                return DailyLimitReached(trades_executed=count, next_trading_day=self._next_trading_day())
            if count == 0:
                return Allowed(is_first_trade=True, trades_remaining=self.max_trades_per_day)
            return Allowed(is_first_trade=False, trades_remaining=self.max_trades_per_day - count)

    def record_trade(self, symbol: str, side: str, price, quantity) -> TradeRecord:
        with self._lock:
            today = self._today()
            if self._state.date != today:
                self._state = DailyTradingState.new_for(today)

            is_first = not self._state.trades_today
            record = TradeRecord(
                timestamp=self._now(),
                symbol=symbol,
                side=side.upper(),
                price=to_decimal(price),
                quantity=to_decimal(quantity),
                is_first_trade=is_first,
            )
            self._state.trades_today.append(record)
            if is_first:
                self._state.first_trade_executed = True
            else:
                self._state.second_trade_executed = True
            self._save_state()

            logger.info(
                "Trade recorded: {} {} {} @ {}. Trades today: {}/{}",
                record.side, record.quantity, symbol, record.price,
                len(self._state.trades_today), self.max_trades_per_day,
            )
            return record

    def try_record_trade(
        self, symbol: str, side: str, price, quantity
    ) -> tuple[TradePermission, TradeRecord | None]:
        """Check the cap and record in one step; nothing is recorded when blocked."""
        with self._lock:
            permission = self.can_trade()
            if not permission.is_allowed:
                return permission, None
            return permission, self.record_trade(symbol, side, price, quantity)

    def update_pnl(self, amount) -> None:
        with self._lock:
            today = self._today()
            if self._state.date != today:
                self._state = DailyTradingState.new_for(today)
            self._state.daily_pnl = to_decimal(amount)
            self._save_state()

    # ── reporting ──

    def get_status(self) -> TradingStatus:
        with self._lock:
            today = self._today()
            if self._state.date != today:
                return TradingStatus(
                    date=today,
                    trades_executed=0,
                    trades_remaining=self.max_trades_per_day,
                    max_trades_per_day=self.max_trades_per_day,
                    first_trade=None,
                    second_trade=None,
                    daily_pnl=Decimal("0"),
                    can_trade=True,
                )

            trades = self._state.trades_today
            return TradingStatus(
                date=self._state.date,
                trades_executed=len(trades),
                trades_remaining=max(0, self.max_trades_per_day - len(trades)),
                max_trades_per_day=self.max_trades_per_day,
                first_trade=trades[0] if trades else None,
                second_trade=trades[1] if len(trades) > 1 else None,
                daily_pnl=self._state.daily_pnl,
                can_trade=len(trades) < self.max_trades_per_day,
            )

    def todays_trades(self) -> list[TradeRecord]:
        with self._lock:
            if self._state.date != self._today():
                return []
            return list(self._state.trades_today)
