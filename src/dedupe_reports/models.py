"""Data models for the dedupe_reports pipeline stage."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from common.serialization import parse_datetime, serialize_dataclass


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class LineageEdge:
    """One article (and the notification that led to it) referencing a source."""
    article_url: str
    notification_id: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LineageEdge:
        return cls(
            article_url=data.get("article_url") or data.get("articleURL"),
            notification_id=data.get("notification_id") or data.get("notificationId") or "",
        )


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass
class CanonicalSource:
    """A unique original security report, keyed by canonical source URL."""
    source_url: str
    title: str
    summary: str
    attack_mechanism: str
    affected_systems: list[str]
    novelty_factor: str
    severity: Severity
    discovery_date: str
    added_at: datetime
    domain_specific: bool
    domain_classification_reasoning: str
    lineage: list[LineageEdge] = field(default_factory=list)
    user_notes: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    is_read: bool = False

    def to_dict(self) -> dict[str, Any]:
        return serialize_dataclass(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CanonicalSource:
        """Build from a stored record; camelCase export keys are accepted too."""
        return cls(
            source_url=_pick(data, "source_url", "sourceURL"),
            title=_pick(data, "title", default=""),
            summary=_pick(data, "summary", default=""),
            attack_mechanism=_pick(data, "attack_mechanism", "attackMechanism", default=""),
            affected_systems=list(_pick(data, "affected_systems", "affectedSystems", default=[])),
            novelty_factor=_pick(data, "novelty_factor", "noveltyFactor", default=""),
            severity=Severity(_pick(data, "severity", default="medium")),
            discovery_date=_pick(data, "discovery_date", "discoveryDate", default=""),
            added_at=parse_datetime(_pick(data, "added_at", "addedAt", "addedDate")),
            domain_specific=bool(_pick(data, "domain_specific", "domainSpecific", "isLLMSpecific", default=False)),
            domain_classification_reasoning=_pick(
                data,
                "domain_classification_reasoning",
                "domainClassificationReasoning",
                "llmClassification",
                default="",
            ),
            lineage=[LineageEdge.from_dict(e) for e in _pick(data, "lineage", default=[])],
            user_notes=_pick(data, "user_notes", "userNotes"),
            tags=list(_pick(data, "tags", default=[])),
            is_read=bool(_pick(data, "is_read", "isRead", default=False)),
        )


@dataclass
class NoveltySplit:
    novel: list[str] = field(default_factory=list)
    known: list[str] = field(default_factory=list)


@dataclass
class PendingSource:
    """A novel source URL queued for fetch and summarization, with its lineage so far."""
    source_url: str
    queued_at: datetime
    lineage: list[LineageEdge] = field(default_factory=list)

    def add_edge(self, edge: LineageEdge) -> bool:
        if edge in self.lineage:
            return False
        self.lineage.append(edge)
        return True

    def to_dict(self) -> dict[str, Any]:
        return serialize_dataclass(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PendingSource:
        return cls(
            source_url=data["source_url"],
            queued_at=parse_datetime(data["queued_at"]),
            lineage=[LineageEdge.from_dict(e) for e in data.get("lineage") or []],
        )


@dataclass
class FailedSource:
    """A novel source that could not be fetched or summarized; kept so it can be retried."""
    source_url: str
    error: str
    failed_at: datetime
    lineage: list[LineageEdge] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return serialize_dataclass(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FailedSource:
        return cls(
            source_url=data["source_url"],
            error=data.get("error") or "",
            failed_at=parse_datetime(data["failed_at"]),
            lineage=[LineageEdge.from_dict(e) for e in data.get("lineage") or []],
        )
