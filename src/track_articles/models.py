"""Data models for the track_articles pipeline stage."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from common.serialization import parse_datetime, serialize_dataclass


class Classification(str, Enum):
    """Outcome of classifying one article."""
    HAS_SOURCES = "has-sources"
    NO_SOURCES = "no-sources"
    IS_ORIGINAL_REPORT = "is-original-report"
    ERROR = "error"


@dataclass
class ProcessedArticle:
    """An article that has been analyzed once. Keyed by canonical article URL."""
    article_url: str
    source_notification_id: str
    processed_at: datetime
    classification: Classification
    discovered_source_urls: list[str] = field(default_factory=list)
    notes: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return serialize_dataclass(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProcessedArticle:
        return cls(
            article_url=data["article_url"],
            source_notification_id=data["source_notification_id"],
            processed_at=parse_datetime(data["processed_at"]),
            classification=Classification(data["classification"]),
            discovered_source_urls=list(data.get("discovered_source_urls") or []),
            notes=data.get("notes"),
        )
