from .fallback import FallbackCalculator
from .models import (
    Allowed,
    DailyLimitReached,
    DailyTradingState,
    MarketSnapshot,
    TradePermission,
    TradeRecord,
    TradingRecommendation,
    TradingStatus,
    TradingTargets,
)
from .response_parser import parse_ai_response
from .trade_limiter import TradeLimiter


__all__ = [
    "Allowed",
    "DailyLimitReached",
    "DailyTradingState",
    "FallbackCalculator",
    "MarketSnapshot",
    "TradeLimiter",
    "TradePermission",
    "TradeRecord",
    "TradingRecommendation",
    "TradingStatus",
    "TradingTargets",
    "parse_ai_response",
]
