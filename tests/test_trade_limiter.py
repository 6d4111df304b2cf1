import threading
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from target_engine.models import Allowed, DailyLimitReached, DailyTradingState, TradeRecord
from target_engine.state_store import InMemoryStateStore, JsonFileStateStore, StateStoreError
from target_engine.trade_limiter import TradeLimiter


class BrokenStore:
    def __init__(self) -> None:
        self.save_attempts = 0

    def load(self):
        raise StateStoreError("disk on fire")

    def save(self, state):
        self.save_attempts += 1
        raise StateStoreError("read-only filesystem")


def test_daily_cycle_and_implicit_rollover(clock):
    limiter = TradeLimiter(InMemoryStateStore(), clock=clock)

    assert limiter.can_trade() == Allowed(is_first_trade=True, trades_remaining=2)

    limiter.record_trade("BTCUSDT", "BUY", Decimal("64000"), Decimal("0.01"))
    assert limiter.can_trade() == Allowed(is_first_trade=False, trades_remaining=1)

    limiter.record_trade("BTCUSDT", "SELL", Decimal("65000"), Decimal("0.01"))
    assert limiter.can_trade() == DailyLimitReached(trades_executed=2, next_trading_day="2026-03-15")

    clock.advance(days=1)
    assert limiter.can_trade() == Allowed(is_first_trade=True, trades_remaining=2)


def test_record_trade_flags_first_and_second(clock):
    store = InMemoryStateStore()
    limiter = TradeLimiter(store, clock=clock)

    first = limiter.record_trade("ETHUSDT", "buy", "3000", "0.5")
    second = limiter.record_trade("ETHUSDT", "SELL", "3100", "0.5")

    assert first.is_first_trade is True
    assert first.side == "BUY"
    assert first.timestamp == clock.now
    assert second.is_first_trade is False

    persisted = store.load()
    assert persisted.first_trade_executed is True
    assert persisted.second_trade_executed is True
    assert [t.price for t in persisted.trades_today] == [Decimal("3000"), Decimal("3100")]


def test_record_trade_does_not_enforce_cap(clock):
    limiter = TradeLimiter(InMemoryStateStore(), clock=clock)
    for _ in range(3):
        limiter.record_trade("BTCUSDT", "BUY", 1, 1)

    assert limiter.get_status().trades_executed == 3
    assert isinstance(limiter.can_trade(), DailyLimitReached)


def test_try_record_trade_refuses_past_the_cap(clock):
    limiter = TradeLimiter(InMemoryStateStore(), clock=clock)
    limiter.record_trade("BTCUSDT", "BUY", 1, 1)
    limiter.record_trade("BTCUSDT", "SELL", 1, 1)

    permission, record = limiter.try_record_trade("BTCUSDT", "BUY", 1, 1)

    assert record is None
    assert permission.is_allowed is False
    assert limiter.get_status().trades_executed == 2


def test_concurrent_try_record_respects_cap(clock):
    limiter = TradeLimiter(InMemoryStateStore(), clock=clock)
    barrier = threading.Barrier(8)
    recorded = []

    def worker():
        barrier.wait()
        _, record = limiter.try_record_trade("BTCUSDT", "BUY", 1, 1)
        if record is not None:
            recorded.append(record)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(recorded) == 2
    assert limiter.get_status().trades_executed == 2


def test_record_after_day_change_starts_fresh_state(clock):
    store = InMemoryStateStore()
    limiter = TradeLimiter(store, clock=clock)
    limiter.record_trade("BTCUSDT", "BUY", 1, 1)
    limiter.update_pnl("-4.20")

    clock.advance(days=1)
    record = limiter.record_trade("BTCUSDT", "BUY", 2, 1)

    assert record.is_first_trade is True
    persisted = store.load()
    assert persisted.date == "2026-03-15"
    assert len(persisted.trades_today) == 1
    assert persisted.daily_pnl == Decimal("0")


def test_status_reports_virtual_empty_day_without_writing(clock):
    store = InMemoryStateStore()
    limiter = TradeLimiter(store, clock=clock)
    limiter.record_trade("BTCUSDT", "BUY", 1, 1)
    saves_before = store.save_count

    clock.advance(days=1)
    status = limiter.get_status()

    assert status.date == "2026-03-15"
    assert status.trades_executed == 0
    assert status.trades_remaining == 2
    assert status.first_trade is None
    assert status.daily_pnl == Decimal("0")
    assert status.can_trade is True
    assert store.save_count == saves_before
    assert store.load().date == "2026-03-14"


def test_status_after_trades(clock):
    limiter = TradeLimiter(InMemoryStateStore(), clock=clock)
    limiter.record_trade("BTCUSDT", "BUY", "100", "1")
    limiter.record_trade("BTCUSDT", "SELL", "110", "1")
    limiter.update_pnl(Decimal("10"))

    status = limiter.get_status()

    assert status.trades_executed == 2
    assert status.trades_remaining == 0
    assert status.first_trade.side == "BUY"
    assert status.second_trade.side == "SELL"
    assert status.daily_pnl == Decimal("10")
    assert status.can_trade is False
    assert status.summary() == "Date: 2026-03-14, Trades: 2/2, P&L: $10.00, Can Trade: No"


def test_update_pnl_overwrites(clock):
    store = InMemoryStateStore()
    limiter = TradeLimiter(store, clock=clock)
    limiter.update_pnl("12.5")
    limiter.update_pnl("-3")

    assert store.load().daily_pnl == Decimal("-3")


def test_custom_daily_cap(clock):
    limiter = TradeLimiter(InMemoryStateStore(), max_trades_per_day=3, clock=clock)
    assert limiter.can_trade() == Allowed(is_first_trade=True, trades_remaining=3)
    limiter.record_trade("BTCUSDT", "BUY", 1, 1)
    assert limiter.can_trade() == Allowed(is_first_trade=False, trades_remaining=2)


def test_resumes_todays_persisted_state(tmp_path, clock):
    path = tmp_path / "trade_state.json"
    first = TradeLimiter(JsonFileStateStore(path), clock=clock)
    first.record_trade("BTCUSDT", "BUY", "64000", "0.01")
    first.update_pnl("-12.34")

    clock.advance(hours=3)
    reloaded = TradeLimiter(JsonFileStateStore(path), clock=clock)

    status = reloaded.get_status()
    assert status.trades_executed == 1
    assert status.daily_pnl == Decimal("-12.34")
    assert reloaded.can_trade() == Allowed(is_first_trade=False, trades_remaining=1)


def test_stale_persisted_state_is_replaced_on_load(clock):
    yesterday = DailyTradingState(
        date="2026-03-13",
        trades_today=[
            TradeRecord(
                timestamp=datetime(2026, 3, 13, 10, tzinfo=timezone.utc),
                symbol="BTCUSDT",
                side="BUY",
                price=Decimal("1"),
                quantity=Decimal("1"),
                is_first_trade=True,
            )
        ],
        first_trade_executed=True,
        daily_pnl=Decimal("5"),
    )
    store = InMemoryStateStore(yesterday)

    limiter = TradeLimiter(store, clock=clock)

    assert limiter.get_status().trades_executed == 0
    persisted = store.load()
    assert persisted.date == "2026-03-14"
    assert persisted.trades_today == []


def test_corrupt_state_file_starts_fresh(tmp_path, clock):
    path = tmp_path / "trade_state.json"
    path.write_text("{not json", encoding="utf-8")

    limiter = TradeLimiter(JsonFileStateStore(path), clock=clock)

    assert limiter.can_trade() == Allowed(is_first_trade=True, trades_remaining=2)
    assert JsonFileStateStore(path).load().date == "2026-03-14"


def test_undecodable_state_file_starts_fresh(tmp_path, clock):
    path = tmp_path / "trade_state.json"
    path.write_bytes(b'{"date": "2026-03-14", \xff\xfe garbage}')

    limiter = TradeLimiter(JsonFileStateStore(path), clock=clock)

    assert limiter.can_trade() == Allowed(is_first_trade=True, trades_remaining=2)
    assert JsonFileStateStore(path).load().trades_today == []


def test_record_trade_rejects_non_finite_price(clock):
    limiter = TradeLimiter(InMemoryStateStore(), clock=clock)

    with pytest.raises(ValueError):
        limiter.record_trade("BTCUSDT", "BUY", "NaN", "1")
    assert limiter.get_status().trades_executed == 0


def test_persistence_failures_keep_limiter_working(clock):
    store = BrokenStore()
    limiter = TradeLimiter(store, clock=clock)

    limiter.record_trade("BTCUSDT", "BUY", 1, 1)

    assert limiter.can_trade() == Allowed(is_first_trade=False, trades_remaining=1)
    assert store.save_attempts == 2
