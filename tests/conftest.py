from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from target_engine.alerts import AlertRouter
from target_engine.models import MarketSnapshot


class FakeClock:
    """Mutable UTC clock for driving day rollovers."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeCompletionClient:
    name = "fake"

    def __init__(self, text: str = "", healthy: bool = True, error: Exception | None = None, delay: float = 0) -> None:
        self.text = text
        self.healthy = healthy
        self.error = error
        self.delay = delay
        self.prompts: list[str] = []

    def health_check(self) -> bool:
        return self.healthy

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            import time

            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.text


class RecordingAlerts(AlertRouter):
    def __init__(self) -> None:
        super().__init__(webhook_url="")
        self.events: list[tuple[str, str]] = []

    def send(self, event_type, message, metadata=None):
        self.events.append((event_type, message))
        return False


def make_snapshot(**overrides) -> MarketSnapshot:
    values = {
        "symbol": "BTCUSDT",
        "current_price": Decimal("100"),
        "high_24h": Decimal("103"),
        "low_24h": Decimal("97"),
        "price_change_24h_percent": Decimal("0"),
        "account_balance": Decimal("1000"),
    }
    values.update(overrides)
    return MarketSnapshot(**values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def snapshot() -> MarketSnapshot:
    return make_snapshot()
