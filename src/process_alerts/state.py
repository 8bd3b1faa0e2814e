"""Persisted tracker state and the stores that load and save it atomically."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Protocol

from common.aws import read_json_from_s3, upload_json_to_s3
from common.local_io import read_json_local, write_json_atomic
from dedupe_reports.models import CanonicalSource, FailedSource, PendingSource
from process_alerts.models import RunReport
from track_articles.models import ProcessedArticle

logger = logging.getLogger(__name__)

STATE_VERSION = 1
DEFAULT_STATE_PATH = "output/tracker_state.json"
DEFAULT_S3_KEY = "report_tracker/tracker_state.json"


@dataclass
class TrackerState:
    """Everything the pipeline persists between runs."""
    processed_articles: list[ProcessedArticle] = field(default_factory=list)
    reports: list[CanonicalSource] = field(default_factory=list)
    pending_sources: list[PendingSource] = field(default_factory=list)
    failed_sources: list[FailedSource] = field(default_factory=list)
    seen_notification_ids: set[str] = field(default_factory=set)
    last_run: Optional[RunReport] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": STATE_VERSION,
            "processed_articles": [a.to_dict() for a in self.processed_articles],
            "reports": [r.to_dict() for r in self.reports],
            "pending_sources": [p.to_dict() for p in self.pending_sources],
            "failed_sources": [f.to_dict() for f in self.failed_sources],
            "seen_notification_ids": sorted(self.seen_notification_ids),
            "last_run": self.last_run.to_dict() if self.last_run else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrackerState:
        version = data.get("version", STATE_VERSION)
        if version != STATE_VERSION:
            raise ValueError(f"Unsupported state version: {version}")

        last_run = data.get("last_run")
        return cls(
            processed_articles=[ProcessedArticle.from_dict(a) for a in data.get("processed_articles", [])],
            reports=[CanonicalSource.from_dict(r) for r in data.get("reports", [])],
            pending_sources=[PendingSource.from_dict(p) for p in data.get("pending_sources", [])],
            failed_sources=[FailedSource.from_dict(f) for f in data.get("failed_sources", [])],
            seen_notification_ids=set(data.get("seen_notification_ids", [])),
            last_run=RunReport.from_dict(last_run) if last_run else None,
        )


class StateStore(Protocol):
    def load(self) -> TrackerState:
        ...

    def save(self, state: TrackerState) -> None:
        ...


class LocalStateStore:
    """State kept in one JSON file, replaced atomically on save."""

    def __init__(self, path: str | Path = DEFAULT_STATE_PATH) -> None:
        self.path = Path(path)

    @property
    def lock_path(self) -> Path:
        return self.path.with_name(self.path.name + ".lock")

    def load(self) -> TrackerState:
        data = read_json_local(self.path)
        if data is None:
            logger.info("No state at %s, starting empty", self.path)
            return TrackerState()
        return TrackerState.from_dict(data)

    def save(self, state: TrackerState) -> None:
        write_json_atomic(state.to_dict(), self.path)
        logger.info(
            "Saved state to %s (%d articles, %d reports)",
            self.path,
            len(state.processed_articles),
            len(state.reports),
        )


class S3StateStore:
    """State kept in one S3 object; a single put replaces it atomically."""

    def __init__(self, bucket: str | None = None, key: str = DEFAULT_S3_KEY) -> None:
        self.bucket = bucket or os.environ["S3_BUCKET_NAME"]
        self.key = key

    def load(self) -> TrackerState:
        data = read_json_from_s3(self.bucket, self.key)
        if data is None:
            logger.info("No state at s3://%s/%s, starting empty", self.bucket, self.key)
            return TrackerState()
        return TrackerState.from_dict(data)

    def save(self, state: TrackerState) -> None:
        upload_json_to_s3(state.to_dict(), self.bucket, self.key)
