"""Data models for the parse_notifications pipeline stage."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class RawNotification:
    """Inbound alert message, opaque until parsed. Never mutated."""
    id: str
    received_at: Optional[datetime]
    raw_body: str


@dataclass(frozen=True)
class CandidateArticle:
    """A link found in a notification, keyed by its canonical URL. Lives for one run."""
    notification_id: str
    raw_link: str
    canonical_url: str
    title: Optional[str] = None
