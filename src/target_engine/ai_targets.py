"""AI-backed target calculation with a deterministic safety net.

Each recalculation computes the fallback targets first, then asks the
configured completion backend for an analysis.  The AI call runs on a worker
thread and is abandoned after ``ai_timeout_seconds``; a timeout, transport
error or unhealthy backend hands the fallback targets back to the caller.
There is no retry inside a single recalculation.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from decimal import Decimal
from typing import Protocol

from loguru import logger

from .alerts import AlertRouter
from .fallback import FallbackCalculator
from .models import MarketSnapshot, TradingTargets
from .ollama_client import OllamaClient
from .openai_client import OpenAIClient
from .response_parser import parse_ai_response
from .settings import settings


class CompletionClient(Protocol):
    name: str

    def health_check(self) -> bool: ...

    def complete(self, prompt: str) -> str: ...


RESPONSE_FORMAT = """RECOMMENDATION: [STRONG_BUY/BUY/HOLD/SELL/STRONG_SELL]
CONFIDENCE: [0-100]%
STOP_LOSS: $[price]
TAKE_PROFIT: $[price]
BUY_TARGET: $[price - a good entry point near support]
SELL_TARGET: $[price - a good exit point near resistance]
SUPPORT: $[S1 price]
STRONG_SUPPORT: $[S2 price]
RESISTANCE: $[R1 price]
STRONG_RESISTANCE: $[R2 price]
PIVOT: $[pivot point price]
REASONING: [Your 2-3 sentence explanation including support/resistance analysis]"""


def _sma_info(snapshot: MarketSnapshot) -> str:
    if snapshot.sma_short is None or snapshot.sma_long is None:
        return "Not available"
    trend = "BULLISH (short > long)" if snapshot.sma_short > snapshot.sma_long else "BEARISH (short < long)"
    return f"SMA(10): {snapshot.sma_short:.2f}, SMA(20): {snapshot.sma_long:.2f}, Trend: {trend}"


def _rsi_info(snapshot: MarketSnapshot) -> str:
    if snapshot.rsi is None:
        return "Not available"
    if snapshot.rsi > 70:
        condition = "OVERBOUGHT"
    elif snapshot.rsi < 30:
        condition = "OVERSOLD"
    else:
        condition = "NEUTRAL"
    return f"{snapshot.rsi:.2f} ({condition})"


def _position_info(snapshot: MarketSnapshot) -> str:
    entry = snapshot.position_entry_price
    if entry is None:
        return "No open position"
    if entry == 0:
        return f"Entry: ${entry:.2f}"
    pnl_percent = (snapshot.current_price - entry) / entry * Decimal("100")
    return f"Entry: ${entry:.2f}, Current P&L: {pnl_percent:.2f}%"


def build_analysis_prompt(snapshot: MarketSnapshot) -> str:
    low_12h = snapshot.low_12h if snapshot.low_12h is not None else snapshot.low_24h
    high_12h = snapshot.high_12h if snapshot.high_12h is not None else snapshot.high_24h
    low_48h = snapshot.low_48h if snapshot.low_48h is not None else snapshot.low_24h
    high_48h = snapshot.high_48h if snapshot.high_48h is not None else snapshot.high_24h
    price_ranges = f"12h Range: ${low_12h:.2f} - ${high_12h:.2f}, 48h Range: ${low_48h:.2f} - ${high_48h:.2f}"

    return (
        "You are a crypto trading analyst specializing in support and resistance analysis. "
        "Analyze the following market data and calculate precise support/resistance levels.\n\n"
        f"MARKET DATA FOR {snapshot.symbol}:\n"
        f"- Current Price: ${snapshot.current_price:.2f}\n"
        f"- 24h High: ${snapshot.high_24h:.2f}\n"
        f"- 24h Low: ${snapshot.low_24h:.2f}\n"
        f"- 24h Change: {snapshot.price_change_24h_percent:.2f}%\n"
        f"- Price Ranges: {price_ranges}\n"
        f"- Moving Averages: {_sma_info(snapshot)}\n"
        f"- RSI (14): {_rsi_info(snapshot)}\n"
        f"- Account Balance: ${snapshot.account_balance:.2f} USDT\n\n"
        f"HOURLY PRICE DATA:\n{snapshot.hourly_data_summary or 'Not available'}\n\n"
        f"CURRENT POSITION:\n{_position_info(snapshot)}\n\n"
        "Calculate support and resistance levels using:\n"
        "1. Pivot Point method: PP = (High + Low + Close) / 3\n"
        "2. Support 1: S1 = 2*PP - High\n"
        "3. Support 2: S2 = PP - (High - Low)\n"
        "4. Resistance 1: R1 = 2*PP - Low\n"
        "5. Resistance 2: R2 = PP + (High - Low)\n\n"
        "Provide your analysis in EXACTLY this format (use these exact labels):\n\n"
        f"{RESPONSE_FORMAT}\n\n"
        "Rules:\n"
        "1. ALWAYS calculate and provide support/resistance levels based on 24h/48h data\n"
        "2. BUY_TARGET should be near a support level for good entry\n"
        "3. SELL_TARGET should be near a resistance level for good exit\n"
        "4. Stop-loss should be below strong support\n"
        "5. Take-profit should be near or above resistance\n"
        "6. Even for HOLD recommendations, provide buy/sell targets for future reference\n"
        "7. Provide specific dollar amounts, not percentages"
    )


def resolve_completion_client() -> CompletionClient:
    provider = settings.ai_provider
    if provider == "ollama":
        return OllamaClient()
    openai = OpenAIClient()
    if provider == "openai":
        return openai
    if openai.is_configured():
        return openai
    return OllamaClient()


class AiTargetService:
    def __init__(
        self,
        client: CompletionClient | None = None,
        timeout_seconds: float | None = None,
        enabled: bool | None = None,
        alerts: AlertRouter | None = None,
    ) -> None:
        self.enabled = settings.ai_enabled if enabled is None else enabled
        self.client = client if client is not None else (resolve_completion_client() if self.enabled else None)
        self.timeout_seconds = float(settings.ai_timeout_seconds if timeout_seconds is None else timeout_seconds)
        if self.timeout_seconds <= 0:
            raise ValueError(f"AI timeout must be positive, got {self.timeout_seconds}")
        self.alerts = alerts or AlertRouter()

    def calculate_targets(self, snapshot: MarketSnapshot) -> TradingTargets:
        fallback = FallbackCalculator.calculate_targets(snapshot)
        logger.info(
            "Fallback for {}: {} @ {:.0f}% confidence",
            snapshot.symbol, fallback.recommendation, fallback.confidence,
        )
        if not self.enabled or self.client is None:
            return fallback

        if not self._backend_healthy():
            self._report_fallback(snapshot, "AI backend unavailable")
            return fallback

        logger.info(
            "Requesting AI analysis for {} targets via {} (timeout: {:.0f}s)...",
            snapshot.symbol, self.client.name, self.timeout_seconds,
        )
        prompt = build_analysis_prompt(snapshot)
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ai-targets")
        try:
            future = executor.submit(self.client.complete, prompt)
            raw = future.result(timeout=self.timeout_seconds)
        except FutureTimeout:
            self._report_fallback(snapshot, f"AI analysis timed out after {self.timeout_seconds:.0f}s")
            return fallback
        except Exception as exc:
            self._report_fallback(snapshot, f"AI analysis failed: {exc}")
            return fallback
        finally:
            # a timed-out request keeps its thread until the HTTP timeout fires
            executor.shutdown(wait=False, cancel_futures=True)

        targets = parse_ai_response(raw, snapshot)
        logger.info("AI: {} @ {:.0f}% confidence", targets.recommendation, targets.confidence)
        return targets

    def _backend_healthy(self) -> bool:
        try:
            return bool(self.client.health_check())
        except Exception as exc:
            logger.warning("AI health check raised: {}", exc)
            return False

    def _report_fallback(self, snapshot: MarketSnapshot, reason: str) -> None:
        logger.warning("{}; using fallback targets for {}", reason, snapshot.symbol)
        self.alerts.send("ai_fallback", reason, {"symbol": snapshot.symbol})
