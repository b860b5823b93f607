"""
Alerting system for lesson change notifications.

This module provides:
- Webhook delivery of lesson changes and internal errors
- Log-only alerting when no webhook is configured
- Alert severity filtering and throttling
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
import structlog
from asyncio_throttle import Throttler

from watcher.models import AlertConfig, LessonChange, LessonInfo

logger = structlog.get_logger(__name__)


def rgb(r: int, g: int, b: int) -> int:
    """Pack a color the way webhook embeds expect it."""
    return (r << 16) | (g << 8) | b


LESSON_COLOR = rgb(146, 23, 237)
ERROR_COLOR = rgb(228, 24, 17)


def _field(name: str, value: str) -> Dict[str, Any]:
    return {"name": name, "value": value or "-", "inline": True}


def format_lesson_description(lesson: LessonInfo, summary: str) -> str:
    """Body text of a lesson notification."""
    lines = [f"({lesson.datetime.isoformat(sep=' ')})"]
    if summary:
        lines.append(f"**{summary}**")

    optional_texts = [
        ("Lesson Info", lesson.lesson_info),
        ("Lesson Text", lesson.lesson_text),
        ("Substitution Text", lesson.substitution_text),
        ("Notes", lesson.notes),
    ]
    for label, value in optional_texts:
        if value is not None:
            lines.append(f"**{label}:** {value}")

    for number, text in enumerate(lesson.texts, start=1):
        lines.append(f"**Text #{number}:** {text}")

    return "\n".join(lines)


def build_lesson_embed(change: LessonChange) -> Dict[str, Any]:
    """Embed describing one lesson change."""
    lesson = change.lesson
    return {
        "title": change.title,
        "description": format_lesson_description(lesson, change.change_summary),
        "color": LESSON_COLOR,
        "timestamp": change.detected_at.isoformat(),
        "fields": [
            _field("Subject", lesson.subject),
            _field("Teacher", lesson.teacher),
            _field("Room", lesson.room),
            _field("Time", lesson.datetime.strftime("%H:%M")),
        ],
    }


class AlertManager:
    """Manager for handling alerts and notifications."""

    def __init__(self, alert_config: AlertConfig, http_client: Optional[httpx.AsyncClient] = None):
        """
        Initialize alert manager.

        Args:
            alert_config: Alert configuration
            http_client: Optional HTTP client (one is created when omitted)
        """
        self.config = alert_config
        self.logger = logger.bind(component="alert_manager")
        self.http_client = http_client or httpx.AsyncClient(timeout=30)
        self.throttler = Throttler(rate_limit=1, period=1.0 / alert_config.notifications_per_second)
        self.sent_count = 0
        self.failed_count = 0

    async def close(self) -> None:
        await self.http_client.aclose()

    async def notify(self, change: LessonChange) -> None:
        """
        Send a notification for one lesson change.

        Delivery failures are logged and swallowed; the caller never retries.
        """
        if not self.config.enabled:
            self.logger.debug("Alerting is disabled")
            return

        if change.severity.rank < self.config.min_severity.rank:
            self.logger.debug(
                "Change below alert threshold",
                change_type=change.change_type.value,
                severity=change.severity.value
            )
            return

        self.logger.info(
            "Sending lesson modification",
            change_type=change.change_type.value,
            subject=change.lesson.subject,
            start=change.lesson.datetime.isoformat(),
            summary=change.change_summary
        )

        try:
            await self._send_embeds([build_lesson_embed(change)])
        except Exception as e:
            self.failed_count += 1
            self.logger.error(
                "Failed to send lesson modification",
                change_type=change.change_type.value,
                error=str(e)
            )

    async def send_error(self, message: str, title: str = "Internal Error") -> None:
        """Report an internal error; never raises."""
        self.logger.error(title, message=message)

        if not self.config.enabled:
            return

        embed = {
            "title": title,
            "description": message,
            "color": ERROR_COLOR,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "fields": [],
        }
        try:
            await self._send_embeds([embed])
        except Exception as e:
            self.failed_count += 1
            self.logger.error(
                "Sending error message to webhook failed",
                error=str(e)
            )

    async def send_shutdown(self, message: str) -> None:
        """Final notification before the process exits."""
        await self.send_error(message, title="Shutting Down")

    async def _send_embeds(self, embeds: List[Dict[str, Any]]) -> None:
        if not self.config.webhook_url:
            return

        payload = {
            "username": self.config.username,
            "avatar_url": self.config.avatar_url,
            "embeds": embeds,
        }
        async with self.throttler:
            response = await self.http_client.post(self.config.webhook_url, json=payload)
            response.raise_for_status()
        self.sent_count += 1
