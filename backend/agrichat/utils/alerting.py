# /agrichat/utils/alerting.py

import httpx
import logging
from typing import Optional, Dict, Any
from datetime import datetime, timezone

from agrichat.config.settings import settings

# Posts critical operational alerts (dead-lettered jobs, rejected credentials)
# to an external webhook. A missing webhook URL turns alerting off.

logger = logging.getLogger(__name__)


class AlertingService:
    def __init__(self, webhook_url: Optional[str]):
        self.webhook_url = webhook_url
        self.client = httpx.AsyncClient(timeout=5.0) if webhook_url else None

    async def send_critical_alert(self, error: str, context: Dict[str, Any]):
        if not self.client:
            logger.warning(f"Critical alert (no webhook configured): {error} {context}")
            return
        try:
            alert_data = {
                "severity": "critical",
                "service": "agrichat-whatsapp",
                "error": error,
                "context": context,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "environment": settings.environment,
            }
            await self.client.post(self.webhook_url, json=alert_data)
        except Exception as e:
            logger.error(f"Failed to send critical alert: {e}")

    async def cleanup(self):
        if self.client:
            await self.client.aclose()


# Globally accessible instance
alerting_service = AlertingService(settings.alerting_webhook_url)
