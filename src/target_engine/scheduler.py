from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from .models import MarketSnapshot
from .monitor import CycleResult, TargetMonitor
from .settings import settings


class BotScheduler:
    """Runs the monitor every ``price_check_interval_seconds``, one cycle at a time."""

    def __init__(
        self,
        monitor: TargetMonitor,
        snapshot_source: Callable[[], MarketSnapshot],
        interval_seconds: int | None = None,
    ) -> None:
        self.monitor = monitor
        self.snapshot_source = snapshot_source
        self.interval_seconds = settings.price_check_interval_seconds if interval_seconds is None else interval_seconds
        self.scheduler = BackgroundScheduler(timezone="UTC")

    def run_once(self) -> CycleResult | None:
        try:
            snapshot = self.snapshot_source()
        except Exception as exc:
            logger.warning("Market data unavailable, skipping cycle: {}", exc)
            return None
        try:
            return self.monitor.run_cycle(snapshot)
        except Exception as exc:
            logger.exception("Monitoring cycle failed: {}", exc)
            return None

    def start(self) -> None:
        self.scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id="target_monitor_cycle",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(
            "Scheduler started. Price check every {}s, target recalculation every {}s",
            self.interval_seconds,
            self.monitor.policy.ai_recalc_interval_seconds,
        )

    def stop(self) -> None:
        self.scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
