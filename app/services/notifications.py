from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Protocol
from uuid import UUID

from app.core.settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StatusChangeNotice:
    tenant_id: str
    application_id: UUID
    from_status: str
    to_status: str
    trigger: str
    actor_id: UUID | None = None


class NotificationSink(Protocol):
    def send(self, notice: StatusChangeNotice) -> None: ...


class LoggingNotificationSink:
    """Default sink: delivery channels live outside this service."""

    def send(self, notice: StatusChangeNotice) -> None:
        logger.info(
            "Application status changed %s -> %s",
            notice.from_status,
            notice.to_status,
            extra={
                "application_id": str(notice.application_id),
                "event": "application_status_notice",
                "from_status": notice.from_status,
                "to_status": notice.to_status,
            },
        )


_sink: NotificationSink = LoggingNotificationSink()


def get_notification_sink() -> NotificationSink:
    return _sink


def set_notification_sink(sink: NotificationSink) -> None:
    global _sink
    _sink = sink


def dispatch_notices(notices: Iterable[StatusChangeNotice], sink: NotificationSink | None = None) -> int:
    """Send notices after commit. Failures are logged and never re-raised."""
    if not settings.notifications_enabled:
        return 0
    target = sink or get_notification_sink()
    sent = 0
    for notice in notices:
        try:
            target.send(notice)
            sent += 1
        except Exception:
            logger.exception(
                "Notification dispatch failed",
                extra={"application_id": str(notice.application_id), "event": "notification_failed"},
            )
    return sent
