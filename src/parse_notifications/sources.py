"""Message sources that supply raw notifications to the pipeline."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Protocol

from common.local_io import read_jsonl_local
from common.serialization import parse_datetime
from common.utils import get_value
from parse_notifications.models import RawNotification

logger = logging.getLogger(__name__)


class NotificationSource(Protocol):
    def fetch_notifications(self, seen_ids: set[str]) -> list[RawNotification]:
        """Return notifications whose ids are not in seen_ids."""
        ...


def to_notification(record: dict) -> RawNotification:
    """Build a RawNotification from a JSON record (camelCase or snake_case keys)."""
    notification_id = get_value(record, "id")
    if not notification_id:
        raise ValueError("Notification record is missing 'id'")

    received_at = get_value(record, "receivedAt") or get_value(record, "received_at")
    raw_body = get_value(record, "rawBody")
    if raw_body is None:
        raw_body = get_value(record, "raw_body", "")

    return RawNotification(
        id=str(notification_id),
        received_at=parse_datetime(received_at),
        raw_body=raw_body or "",
    )


class StaticNotificationSource:
    """Serves a fixed list of notifications; useful for replay and tests."""

    def __init__(self, notifications: Iterable[RawNotification]) -> None:
        self.notifications = list(notifications)

    def fetch_notifications(self, seen_ids: set[str]) -> list[RawNotification]:
        return [n for n in self.notifications if n.id not in seen_ids]


class JsonlNotificationSource:
    """Reads notifications exported as JSONL records ``{id, receivedAt, rawBody}``."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def fetch_notifications(self, seen_ids: set[str]) -> list[RawNotification]:
        if not self.path.exists():
            logger.warning("Notification file not found: %s", self.path)
            return []

        notifications = []
        for line_no, record in enumerate(read_jsonl_local(self.path), 1):
            try:
                notification = to_notification(record)
            except ValueError as e:
                logger.warning("Skipping notification on line %d: %s", line_no, e)
                continue
            if notification.id not in seen_ids:
                notifications.append(notification)

        logger.info("Loaded %d unseen notifications from %s", len(notifications), self.path)
        return notifications
