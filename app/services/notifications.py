"""Fire-and-forget run announcements to a Discord-style webhook."""

import logging
from datetime import datetime
from typing import Any, Optional

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


class RunNotifier:
    """Posts an embed for every completed run. Failures are logged and ignored."""

    def __init__(self, webhook_url: Optional[str] = None, transport: Optional[httpx.BaseTransport] = None):
        """Initialize the notifier."""
        self.webhook_url = webhook_url if webhook_url is not None else settings.DISCORD_RUN_WEBHOOK_URL
        self.transport = transport

    def run_completed(self, workflow_title: str, output_path: Any, media_type: str) -> None:
        if not self.webhook_url:
            return

        embed = {
            "title": "Workflow Run",
            "description": f"**{workflow_title}** was run",
            "color": 0x51A2FF,
            "timestamp": datetime.utcnow().isoformat(),
        }
        preview = output_path[0] if isinstance(output_path, list) and output_path else output_path
        if media_type == "image" and isinstance(preview, str):
            embed["image"] = {"url": preview}

        try:
            with httpx.Client(timeout=10.0, transport=self.transport) as client:
                client.post(self.webhook_url, json={"embeds": [embed]}).raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Run notification failed: {e}")
