"""Turn a free-text AI completion into :class:`TradingTargets`.

The model is asked to answer with ``LABEL: value`` lines (see
``ai_targets.RESPONSE_FORMAT``) but in practice it decorates them with ``$``
signs, thousands separators, percent signs, markdown and extra prose.  The
parser therefore works label-by-label:

  1. find the first case-insensitive occurrence of a label variant
  2. skip anything that is not a digit or a decimal point
  3. read digits / ``.`` / ``,`` until the number ends, drop the commas

``PRICE_FIELDS`` is the single table of labels; adding a field means adding a
row there.  Parsing never raises: a missing stop-loss or take-profit falls
back to ±5% / +10% of the current price and every other level stays ``None``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from loguru import logger

from .models import MarketSnapshot, TradingRecommendation, TradingTargets


DEFAULT_CONFIDENCE = Decimal("50")
DEFAULT_REASONING = "AI analysis completed"
DEFAULT_STOP_LOSS_FACTOR = Decimal("0.95")
DEFAULT_TAKE_PROFIT_FACTOR = Decimal("1.10")

_STRONG_PREFIXES = ("STRONG_", "STRONG ")


@dataclass(frozen=True)
class FieldRule:
    """Label variants for one field, tried in order.

    ``shadowed_by`` lists prefixes that turn an occurrence into a different,
    longer label (``STRONG_SUPPORT`` is not ``SUPPORT``).
    """
    field: str
    labels: tuple[str, ...]
    shadowed_by: tuple[str, ...] = ()


PRICE_FIELDS: tuple[FieldRule, ...] = (
    FieldRule("stop_loss_price", ("STOP_LOSS", "STOP LOSS")),
    FieldRule("take_profit_price", ("TAKE_PROFIT", "TAKE PROFIT")),
    FieldRule("buy_target_price", ("BUY_TARGET", "BUY TARGET")),
    FieldRule("sell_target_price", ("SELL_TARGET", "SELL TARGET")),
    FieldRule("strong_support", ("STRONG_SUPPORT", "STRONG SUPPORT")),
    FieldRule("support", ("SUPPORT:", "SUPPORT"), shadowed_by=_STRONG_PREFIXES),
    FieldRule("strong_resistance", ("STRONG_RESISTANCE", "STRONG RESISTANCE")),
    FieldRule("resistance", ("RESISTANCE:", "RESISTANCE"), shadowed_by=_STRONG_PREFIXES),
    FieldRule("pivot_point", ("PIVOT_POINT", "PIVOT POINT", "PIVOT")),
)

# first match wins
RECOMMENDATION_RULES: tuple[tuple[tuple[str, ...], TradingRecommendation], ...] = (
    (("STRONG_BUY", "STRONG BUY"), TradingRecommendation.STRONG_BUY),
    (("STRONG_SELL", "STRONG SELL"), TradingRecommendation.STRONG_SELL),
    (("RECOMMENDATION: BUY", "RECOMMENDATION:BUY"), TradingRecommendation.BUY),
    (("RECOMMENDATION: SELL", "RECOMMENDATION:SELL"), TradingRecommendation.SELL),
)


# ── extraction utility ────────────────────────────────────────────

def _label_pattern(label: str, shadowed_by: tuple[str, ...] = ()) -> re.Pattern[str]:
    lookbehinds = "".join(f"(?<!{re.escape(prefix)})" for prefix in shadowed_by)
    return re.compile(lookbehinds + re.escape(label), re.IGNORECASE)


def find_value_start(text: str, label: str, shadowed_by: tuple[str, ...] = ()) -> int | None:
    """Index just past the first usable occurrence of ``label``."""
    match = _label_pattern(label, shadowed_by).search(text)
    return match.end() if match else None


def _scan_number(text: str, start: int, allow_thousands: bool, single_point: bool) -> str:
    i = start
    while i < len(text) and not (text[i].isdigit() or text[i] == "."):
        i += 1

    chars: list[str] = []
    seen_point = False
    while i < len(text):
        ch = text[i]
        if ch.isdigit():
            chars.append(ch)
        elif ch == ".":
            if single_point and seen_point:
                break
            seen_point = True
            chars.append(ch)
        elif ch == "," and allow_thousands:
            pass
        else:
            break
        i += 1
    # a sentence-ending period is not part of the number
    return "".join(chars).rstrip(".")


def _to_decimal(raw: str) -> Decimal | None:
    if not raw or not any(ch.isdigit() for ch in raw):
        return None
    try:
        return Decimal(raw)
    except InvalidOperation:
        return None


def extract_number(
    text: str,
    label: str,
    shadowed_by: tuple[str, ...] = (),
    allow_thousands: bool = True,
    single_point: bool = False,
) -> Decimal | None:
    start = find_value_start(text, label, shadowed_by)
    if start is None:
        return None
    return _to_decimal(_scan_number(text, start, allow_thousands, single_point))


def extract_field(text: str, rule: FieldRule) -> Decimal | None:
    for label in rule.labels:
        value = extract_number(text, label, rule.shadowed_by)
        if value is not None:
            return value
    return None


def extract_percentage(text: str, label: str) -> Decimal | None:
    return extract_number(text, label, allow_thousands=False, single_point=True)


def extract_reasoning(text: str) -> str | None:
    start = find_value_start(text, "REASONING:")
    if start is None:
        return None
    remainder = text[start:].splitlines()
    reasoning = remainder[0].strip() if remainder else ""
    return reasoning or None


def classify_recommendation(text: str) -> TradingRecommendation:
    upper = text.upper()
    for tokens, recommendation in RECOMMENDATION_RULES:
        if any(token in upper for token in tokens):
            return recommendation
    return TradingRecommendation.HOLD


# ── public API ────────────────────────────────────────────────────

def parse_ai_response(text: str, snapshot: MarketSnapshot) -> TradingTargets:
    text = text or ""
    prices = {rule.field: extract_field(text, rule) for rule in PRICE_FIELDS}

    stop_loss = prices.pop("stop_loss_price")
    if stop_loss is None:
        stop_loss = snapshot.current_price * DEFAULT_STOP_LOSS_FACTOR
        logger.debug("No STOP_LOSS in AI response for {}; defaulting to {}", snapshot.symbol, stop_loss)

    take_profit = prices.pop("take_profit_price")
    if take_profit is None:
        take_profit = snapshot.current_price * DEFAULT_TAKE_PROFIT_FACTOR
        logger.debug("No TAKE_PROFIT in AI response for {}; defaulting to {}", snapshot.symbol, take_profit)

    confidence = extract_percentage(text, "CONFIDENCE")
    if confidence is None:
        confidence = DEFAULT_CONFIDENCE
    confidence = min(Decimal("100"), max(Decimal("0"), confidence))

    return TradingTargets(
        stop_loss_price=stop_loss,
        take_profit_price=take_profit,
        confidence=confidence,
        reasoning=extract_reasoning(text) or DEFAULT_REASONING,
        recommendation=classify_recommendation(text),
        source="ai",
        **prices,
    )
