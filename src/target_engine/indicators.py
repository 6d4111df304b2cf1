"""Indicator math and snapshot assembly from hourly candles.

The market-data source hands over up to 48 hourly bars (oldest first).  This
module turns them into the :class:`MarketSnapshot` the calculators consume:
SMA(10) / SMA(20) / RSI(14) over the last 24 closes, high/low over the 12h,
24h and 48h windows, and a compact text summary embedded in the AI prompt.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping, Sequence

from .models import MarketSnapshot, to_decimal


SMA_SHORT_PERIOD = 10
SMA_LONG_PERIOD = 20
RSI_PERIOD = 14


@dataclass(frozen=True)
class Candle:
    """Single hourly OHLC bar."""
    timestamp: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Candle":
        return cls(
            timestamp=_parse_timestamp(payload["timestamp"]),
            open=to_decimal(payload["open"]),
            high=to_decimal(payload["high"]),
            low=to_decimal(payload["low"]),
            close=to_decimal(payload["close"]),
        )


def _parse_timestamp(value: Any) -> datetime:
    # exchanges hand out epoch milliseconds, files usually carry ISO text
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > 1e11 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


# ── helper math ───────────────────────────────────────────────────

def sma(values: Sequence[Decimal], period: int) -> Decimal | None:
    if period <= 0 or len(values) < period:
        return None
    return sum(values[-period:], Decimal("0")) / Decimal(period)


def rsi(closes: Sequence[Decimal], period: int = RSI_PERIOD) -> Decimal | None:
    if len(closes) < period + 1:
        return None

    gains = Decimal("0")
    losses = Decimal("0")
    for i in range(len(closes) - period, len(closes)):
        change = closes[i] - closes[i - 1]
        if change > 0:
            gains += change
        else:
            losses += abs(change)

    avg_gain = gains / Decimal(period)
    avg_loss = losses / Decimal(period)
    if avg_loss == 0:
        return Decimal("100")
    rs = avg_gain / avg_loss
    return Decimal("100") - (Decimal("100") / (Decimal("1") + rs))


def window_high_low(candles: Sequence[Candle]) -> tuple[Decimal | None, Decimal | None]:
    if not candles:
        return None, None
    return max(c.high for c in candles), min(c.low for c in candles)


# ── snapshot assembly ─────────────────────────────────────────────

def format_hourly_summary(
    symbol: str,
    candles: Sequence[Candle],
    current_price: Decimal,
    price_change_24h_percent: Decimal,
    volume_24h: Decimal | None = None,
) -> str:
    last_12 = list(candles[-12:])
    last_24 = list(candles[-24:])
    last_48 = list(candles[-48:])
    high_24h, low_24h = window_high_low(last_24)

    lines = [f"=== {symbol} Market Analysis ===", ""]
    lines.append(f"Current Price: ${current_price:.2f}")
    if high_24h is not None and low_24h is not None:
        lines.append(f"24h High: ${high_24h:.2f}")
        lines.append(f"24h Low: ${low_24h:.2f}")
    lines.append(f"24h Change: {price_change_24h_percent:.2f}%")
    if volume_24h is not None:
        lines.append(f"24h Volume: ${volume_24h:.0f}")
    lines.append("")

    for label, window in (("12 Hours", last_12), ("24 Hours", last_24), ("48 Hours", last_48)):
        high, low = window_high_low(window)
        if high is None or low is None:
            continue
        lines.append(f"=== Last {label} ===")
        lines.append(f"High: ${high:.2f}, Low: ${low:.2f}")
        lines.append(f"Range: ${high - low:.2f}")
        lines.append("")

    if last_48:
        lines.append("=== Hourly Prices (48h) ===")
        # every 4th bar keeps the prompt short
        for i, bar in enumerate(last_48):
            if i % 4 == 0:
                lines.append(
                    f"{bar.timestamp:%m/%d %H:%M}: O=${bar.open:.2f} H=${bar.high:.2f} "
                    f"L=${bar.low:.2f} C=${bar.close:.2f}"
                )

    return "\n".join(lines).rstrip() + "\n"


def build_market_snapshot(
    symbol: str,
    candles: Sequence[Candle],
    current_price: Decimal,
    price_change_24h_percent: Decimal,
    account_balance: Decimal = Decimal("0"),
    volume_24h: Decimal | None = None,
    position_entry_price: Decimal | None = None,
    position_quantity: Decimal | None = None,
) -> MarketSnapshot:
    """Assemble a snapshot from up to 48 hourly candles, oldest first.

    Without candles the 24h band degrades to ±2% around the current price,
    the way the polling loop behaves when the data feed is down.
    """
    bars = list(candles[-48:])
    last_24 = bars[-24:]
    closes = [bar.close for bar in last_24]

    high_24h, low_24h = window_high_low(last_24)
    if high_24h is None or low_24h is None:
        high_24h = current_price * Decimal("1.02")
        low_24h = current_price * Decimal("0.98")
    high_12h, low_12h = window_high_low(bars[-12:])
    high_48h, low_48h = window_high_low(bars)

    return MarketSnapshot(
        symbol=symbol,
        current_price=current_price,
        high_24h=high_24h,
        low_24h=low_24h,
        price_change_24h_percent=price_change_24h_percent,
        account_balance=account_balance,
        sma_short=sma(closes, SMA_SHORT_PERIOD),
        sma_long=sma(closes, SMA_LONG_PERIOD),
        rsi=rsi(closes, RSI_PERIOD),
        volume_24h=volume_24h,
        position_entry_price=position_entry_price,
        position_quantity=position_quantity,
        high_12h=high_12h,
        low_12h=low_12h,
        high_48h=high_48h,
        low_48h=low_48h,
        hourly_data_summary=(
            format_hourly_summary(symbol, bars, current_price, price_change_24h_percent, volume_24h)
            if bars
            else None
        ),
    )


def snapshot_from_feed(payload: Mapping[str, Any]) -> MarketSnapshot:
    """Build a snapshot from a feed document carrying raw hourly ``candles``.

    Candles may arrive in any order; they are sorted by timestamp first.
    """
    candles = sorted((Candle.from_dict(item) for item in payload["candles"]), key=lambda c: c.timestamp)

    def optional(key: str) -> Decimal | None:
        value = payload.get(key)
        return None if value in (None, "") else to_decimal(value)

    return build_market_snapshot(
        symbol=str(payload["symbol"]),
        candles=candles,
        current_price=to_decimal(payload["current_price"]),
        price_change_24h_percent=to_decimal(payload.get("price_change_24h_percent", 0)),
        account_balance=to_decimal(payload.get("account_balance", 0)),
        volume_24h=optional("volume_24h"),
        position_entry_price=optional("position_entry_price"),
        position_quantity=optional("position_quantity"),
    )
