from dataclasses import dataclass
from pathlib import Path

import yaml
from loguru import logger

from .settings import settings


@dataclass
class TradePolicy:
    max_trades_per_day: int
    position_size_fraction: float
    ai_enabled: bool
    ai_recalc_interval_seconds: int


def load_trade_policy(file_path: Path | None = None) -> TradePolicy:
    file_path = Path(file_path or settings.trade_policy_path)
    defaults = TradePolicy(
        max_trades_per_day=settings.max_trades_per_day,
        position_size_fraction=settings.position_size_fraction,
        ai_enabled=settings.ai_enabled,
        ai_recalc_interval_seconds=settings.ai_recalc_interval_seconds,
    )
    if not file_path.exists():
        return defaults

    raw = yaml.safe_load(file_path.read_text(encoding="utf-8")) or {}
    limits = raw.get("limits", {}) or {}
    targets = raw.get("targets", {}) or {}

    policy = TradePolicy(
        max_trades_per_day=int(limits.get("max_trades_per_day", defaults.max_trades_per_day)),
        position_size_fraction=float(limits.get("position_size_fraction", defaults.position_size_fraction)),
        ai_enabled=bool(targets.get("ai_enabled", defaults.ai_enabled)),
        ai_recalc_interval_seconds=int(
            targets.get("ai_recalc_interval_seconds", defaults.ai_recalc_interval_seconds)
        ),
    )
    if policy.max_trades_per_day < 1:
        raise ValueError(f"{file_path}: limits.max_trades_per_day must be at least 1")
    if not 0 < policy.position_size_fraction <= 1:
        raise ValueError(f"{file_path}: limits.position_size_fraction must be in (0, 1]")
    if policy.ai_recalc_interval_seconds < settings.price_check_interval_seconds:
        raise ValueError(
            f"{file_path}: targets.ai_recalc_interval_seconds must not be shorter than "
            f"the {settings.price_check_interval_seconds}s price check interval"
        )
    logger.debug("Loaded trade policy from {}: {}", file_path, policy)
    return policy
