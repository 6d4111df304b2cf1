"""Domain types shared by the target calculators and the trade limiter.

Every price and indicator is a :class:`~decimal.Decimal`.  Values that a
market-data source may not be able to supply (moving averages, RSI, the
12h/48h windows, support/resistance levels) are ``None`` when absent, never a
placeholder number, so the scoring code can tell "no RSI" from "RSI = 0".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping, Union


def to_decimal(value: Any) -> Decimal:
    """Coerce JSON-ish numbers / numeric strings to Decimal."""
    if isinstance(value, bool):
        raise ValueError(f"Not a numeric value: {value!r}")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Not a numeric value: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def _optional_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return to_decimal(value)


def _decimal_text(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


# ── Market input ──────────────────────────────────────────────────

@dataclass(frozen=True)
class MarketSnapshot:
    """Point-in-time market view built once per polling cycle."""
    symbol: str
    current_price: Decimal
    high_24h: Decimal
    low_24h: Decimal
    price_change_24h_percent: Decimal
    account_balance: Decimal = Decimal("0")
    sma_short: Decimal | None = None
    sma_long: Decimal | None = None
    rsi: Decimal | None = None
    volume_24h: Decimal | None = None
    position_entry_price: Decimal | None = None
    position_quantity: Decimal | None = None
    high_12h: Decimal | None = None
    low_12h: Decimal | None = None
    high_48h: Decimal | None = None
    low_48h: Decimal | None = None
    hourly_data_summary: str | None = None

    def __post_init__(self) -> None:
        for name, value in vars(self).items():
            if isinstance(value, Decimal) and not value.is_finite():
                raise ValueError(f"MarketSnapshot.{name} must be a finite number, got {value}")

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "MarketSnapshot":
        return cls(
            symbol=str(payload["symbol"]),
            current_price=to_decimal(payload["current_price"]),
            high_24h=to_decimal(payload["high_24h"]),
            low_24h=to_decimal(payload["low_24h"]),
            price_change_24h_percent=to_decimal(payload.get("price_change_24h_percent", 0)),
            account_balance=to_decimal(payload.get("account_balance", 0)),
            sma_short=_optional_decimal(payload.get("sma_short")),
            sma_long=_optional_decimal(payload.get("sma_long")),
            rsi=_optional_decimal(payload.get("rsi")),
            volume_24h=_optional_decimal(payload.get("volume_24h")),
            position_entry_price=_optional_decimal(payload.get("position_entry_price")),
            position_quantity=_optional_decimal(payload.get("position_quantity")),
            high_12h=_optional_decimal(payload.get("high_12h")),
            low_12h=_optional_decimal(payload.get("low_12h")),
            high_48h=_optional_decimal(payload.get("high_48h")),
            low_48h=_optional_decimal(payload.get("low_48h")),
            hourly_data_summary=payload.get("hourly_data_summary") or None,
        )


# ── Target output ─────────────────────────────────────────────────

class TradingRecommendation(Enum):
    STRONG_BUY = "STRONG_BUY"
    BUY = "BUY"
    HOLD = "HOLD"
    SELL = "SELL"
    STRONG_SELL = "STRONG_SELL"

    def __str__(self) -> str:
        return self.value.replace("_", " ")


@dataclass(frozen=True)
class TradingTargets:
    """Active risk-management targets; a newer instance replaces the old one whole."""
    stop_loss_price: Decimal
    take_profit_price: Decimal
    confidence: Decimal          # 0-100
    reasoning: str
    recommendation: TradingRecommendation
    buy_target_price: Decimal | None = None
    sell_target_price: Decimal | None = None
    support: Decimal | None = None
    strong_support: Decimal | None = None
    resistance: Decimal | None = None
    strong_resistance: Decimal | None = None
    pivot_point: Decimal | None = None
    source: str = "fallback"     # "ai" / "fallback"

    def to_dict(self) -> dict:
        return {
            "recommendation": self.recommendation.value,
            "confidence": str(self.confidence),
            "stop_loss_price": str(self.stop_loss_price),
            "take_profit_price": str(self.take_profit_price),
            "buy_target_price": _decimal_text(self.buy_target_price),
            "sell_target_price": _decimal_text(self.sell_target_price),
            "support": _decimal_text(self.support),
            "strong_support": _decimal_text(self.strong_support),
            "resistance": _decimal_text(self.resistance),
            "strong_resistance": _decimal_text(self.strong_resistance),
            "pivot_point": _decimal_text(self.pivot_point),
            "reasoning": self.reasoning,
            "source": self.source,
        }


# ── Daily trade gating ────────────────────────────────────────────

@dataclass(frozen=True)
class TradeRecord:
    timestamp: datetime
    symbol: str
    side: str                    # "BUY" / "SELL"
    price: Decimal
    quantity: Decimal
    is_first_trade: bool

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "symbol": self.symbol,
            "side": self.side,
            "price": str(self.price),
            "quantity": str(self.quantity),
            "is_first_trade": self.is_first_trade,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "TradeRecord":
        timestamp = datetime.fromisoformat(str(payload["timestamp"]).replace("Z", "+00:00"))
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return cls(
            timestamp=timestamp,
            symbol=str(payload["symbol"]),
            side=str(payload["side"]).upper(),
            price=to_decimal(payload["price"]),
            quantity=to_decimal(payload["quantity"]),
            is_first_trade=bool(payload["is_first_trade"]),
        )


@dataclass
class DailyTradingState:
    date: str                    # YYYY-MM-DD (UTC)
    trades_today: list[TradeRecord] = field(default_factory=list)
    first_trade_executed: bool = False
    second_trade_executed: bool = False
    daily_pnl: Decimal = Decimal("0")

    @classmethod
    def new_for(cls, day: str) -> "DailyTradingState":
        return cls(date=day)

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "trades_today": [trade.to_dict() for trade in self.trades_today],
            "first_trade_executed": self.first_trade_executed,
            "second_trade_executed": self.second_trade_executed,
            "daily_pnl": str(self.daily_pnl),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "DailyTradingState":
        if not isinstance(payload, Mapping):
            raise TypeError("Daily trading state must be a JSON object")
        day = str(payload["date"])
        # reject anything that is not a calendar date key
        datetime.strptime(day, "%Y-%m-%d")
        trades = payload.get("trades_today", [])
        if not isinstance(trades, list):
            raise TypeError("trades_today must be a list")
        return cls(
            date=day,
            trades_today=[TradeRecord.from_dict(item) for item in trades],
            first_trade_executed=bool(payload.get("first_trade_executed", False)),
            second_trade_executed=bool(payload.get("second_trade_executed", False)),
            daily_pnl=to_decimal(payload.get("daily_pnl", "0")),
        )


@dataclass(frozen=True)
class Allowed:
    is_first_trade: bool
    trades_remaining: int

    @property
    def is_allowed(self) -> bool:
        return True


@dataclass(frozen=True)
class DailyLimitReached:
    trades_executed: int
    next_trading_day: str

    @property
    def is_allowed(self) -> bool:
        return False


TradePermission = Union[Allowed, DailyLimitReached]


@dataclass(frozen=True)
class TradingStatus:
    date: str
    trades_executed: int
    trades_remaining: int
    max_trades_per_day: int
    first_trade: TradeRecord | None
    second_trade: TradeRecord | None
    daily_pnl: Decimal
    can_trade: bool

    def summary(self) -> str:
        return (
            f"Date: {self.date}, Trades: {self.trades_executed}/{self.max_trades_per_day}, "
            f"P&L: ${self.daily_pnl:.2f}, Can Trade: {'Yes' if self.can_trade else 'No'}"
        )

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "trades_executed": self.trades_executed,
            "trades_remaining": self.trades_remaining,
            "max_trades_per_day": self.max_trades_per_day,
            "first_trade": self.first_trade.to_dict() if self.first_trade else None,
            "second_trade": self.second_trade.to_dict() if self.second_trade else None,
            "daily_pnl": str(self.daily_pnl),
            "can_trade": self.can_trade,
        }
