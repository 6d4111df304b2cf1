from __future__ import annotations

from datetime import datetime, timezone

import requests
from loguru import logger

from .settings import settings


class AlertRouter:
    """Posts selected engine events to a webhook, if one is configured."""

    def __init__(self, webhook_url: str | None = None, event_types_csv: str | None = None) -> None:
        self.webhook_url = (settings.alert_webhook_url if webhook_url is None else webhook_url).strip()
        self.timeout = settings.alert_webhook_timeout_seconds
        csv = settings.alert_event_types_csv if event_types_csv is None else event_types_csv
        self.allowed_event_types = {item.strip() for item in csv.split(",") if item.strip()}

    def should_send(self, event_type: str) -> bool:
        if not self.webhook_url:
            return False
        return event_type in self.allowed_event_types

    def send(self, event_type: str, message: str, metadata: dict | None = None) -> bool:
        """Deliver one event; delivery problems are logged, never raised."""
        if not self.should_send(event_type):
            return False

        payload = {
            "event_type": event_type,
            "message": message,
            "metadata": metadata or {},
            "sent_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            response = requests.post(self.webhook_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Alert routing failed for {}: {}", event_type, exc)
            return False
        return True
