"""Deterministic target calculator used when the AI path is unavailable.

Support/resistance come from classical pivot points over the widest window
the snapshot carries (48h, else 24h), with the current price standing in for
the close.  Stops scale with the 24h range, and the recommendation is a small
signed score over RSI, SMA trend and 24h momentum.  No clock, no I/O, no
randomness: identical snapshots give identical targets.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from .models import MarketSnapshot, TradingRecommendation, TradingTargets


TWO = Decimal("2")
THREE = Decimal("3")
HUNDRED = Decimal("100")

DEFAULT_VOLATILITY_PCT = Decimal("3")
MIN_STOP_LOSS_PCT = Decimal("2")
MAX_STOP_LOSS_PCT = Decimal("5")
BUY_TARGET_FLOOR = Decimal("0.97")
SELL_TARGET_CAP = Decimal("1.05")
MIN_CONFIDENCE = Decimal("30")
MAX_CONFIDENCE = Decimal("90")
MOMENTUM_THRESHOLD_PCT = Decimal("5")


@dataclass(frozen=True)
class PivotLevels:
    pivot: Decimal
    support: Decimal
    strong_support: Decimal
    resistance: Decimal
    strong_resistance: Decimal


@dataclass(frozen=True)
class RecommendationScore:
    score: int
    factors: int
    confidence: Decimal
    recommendation: TradingRecommendation
    reasons: tuple[str, ...]


def pivot_levels(high: Decimal, low: Decimal, close: Decimal) -> PivotLevels:
    pivot = (high + low + close) / THREE
    price_range = high - low
    return PivotLevels(
        pivot=pivot,
        support=TWO * pivot - high,
        strong_support=pivot - price_range,
        resistance=TWO * pivot - low,
        strong_resistance=pivot + price_range,
    )


def stop_loss_percent(snapshot: MarketSnapshot) -> Decimal:
    current = snapshot.current_price
    if current > 0:
        volatility_pct = (snapshot.high_24h - snapshot.low_24h) / current * HUNDRED
    else:
        volatility_pct = DEFAULT_VOLATILITY_PCT
    return min(MAX_STOP_LOSS_PCT, max(MIN_STOP_LOSS_PCT, volatility_pct / TWO))


def score_recommendation(snapshot: MarketSnapshot) -> RecommendationScore:
    score = 0
    factors = 0
    reasons: list[str] = []

    if snapshot.rsi is not None:
        factors += 1
        rsi = snapshot.rsi
        if rsi < 30:
            score += 2
            reasons.append("RSI indicates oversold conditions")
        elif rsi < 40:
            score += 1
            reasons.append("RSI leaning oversold")
        elif rsi > 70:
            score -= 2
            reasons.append("RSI indicates overbought conditions")
        elif rsi > 60:
            score -= 1
            reasons.append("RSI leaning overbought")

    if snapshot.sma_short is not None and snapshot.sma_long is not None:
        factors += 1
        short, long = snapshot.sma_short, snapshot.sma_long
        if short > long:
            score += 1
            if short > long * Decimal("1.02"):
                score += 1
            reasons.append("SMA shows bullish trend")
        else:
            # equal averages count as bearish
            score -= 1
            if short < long * Decimal("0.98"):
                score -= 1
            reasons.append("SMA shows bearish trend")

    factors += 1
    if snapshot.price_change_24h_percent > MOMENTUM_THRESHOLD_PCT:
        score += 1
        reasons.append("Strong upward momentum in 24h")
    elif snapshot.price_change_24h_percent < -MOMENTUM_THRESHOLD_PCT:
        score -= 1
        reasons.append("Strong downward momentum in 24h")

    confidence = min(MAX_CONFIDENCE, Decimal(abs(score)) / Decimal(factors * 2) * HUNDRED)
    confidence = max(MIN_CONFIDENCE, confidence)

    if score >= 3:
        recommendation = TradingRecommendation.STRONG_BUY
    elif score >= 1:
        recommendation = TradingRecommendation.BUY
    elif score <= -3:
        recommendation = TradingRecommendation.STRONG_SELL
    elif score <= -1:
        recommendation = TradingRecommendation.SELL
    else:
        recommendation = TradingRecommendation.HOLD

    return RecommendationScore(
        score=score,
        factors=factors,
        confidence=confidence,
        recommendation=recommendation,
        reasons=tuple(reasons),
    )


class FallbackCalculator:
    """Technical-indicator targets; always succeeds."""

    @staticmethod
    def calculate_targets(snapshot: MarketSnapshot) -> TradingTargets:
        current = snapshot.current_price
        high = snapshot.high_48h if snapshot.high_48h is not None else snapshot.high_24h
        low = snapshot.low_48h if snapshot.low_48h is not None else snapshot.low_24h
        levels = pivot_levels(high, low, current)

        sl_pct = stop_loss_percent(snapshot)
        stop_loss = current * (Decimal("1") - sl_pct / HUNDRED)
        take_profit = current * (Decimal("1") + (sl_pct * TWO) / HUNDRED)

        scored = score_recommendation(snapshot)
        if scored.reasons:
            reasoning = "; ".join(scored.reasons)
        else:
            reasoning = f"{scored.recommendation} recommendation based on mixed signals"

        return TradingTargets(
            stop_loss_price=stop_loss,
            take_profit_price=take_profit,
            confidence=scored.confidence,
            reasoning=reasoning,
            recommendation=scored.recommendation,
            buy_target_price=max(levels.support, current * BUY_TARGET_FLOOR),
            sell_target_price=min(levels.resistance, current * SELL_TARGET_CAP),
            support=levels.support,
            strong_support=levels.strong_support,
            resistance=levels.resistance,
            strong_resistance=levels.strong_resistance,
            pivot_point=levels.pivot,
            source="fallback",
        )
