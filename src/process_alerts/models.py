"""Data models for the process_alerts orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from common.llm import DEFAULT_MODEL
from common.serialization import parse_datetime, serialize_dataclass


class RunStage(str, Enum):
    IDLE = "idle"
    COLLECTING_CANDIDATES = "collecting-candidates"
    FETCHING_ARTICLES = "fetching-articles"
    CLASSIFYING_ARTICLES = "classifying-articles"
    RESOLVING_SOURCES = "resolving-sources"
    FETCHING_SOURCES = "fetching-sources"
    SUMMARIZING = "summarizing"
    COMMITTING = "committing"


class RunStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    NO_OP = "no-op"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class PipelineConfig:
    """Numeric bounds and knobs for one pipeline run."""
    model: str = DEFAULT_MODEL
    fetch_timeout_seconds: float = 20.0
    max_fetch_retries: int = 2
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 30.0
    max_workers: int = 4
    model_retries: int = 1
    article_char_limit: Optional[int] = 16000
    source_char_limit: Optional[int] = 32000
    tracking_params: tuple[str, ...] = ()


@dataclass
class RunReport:
    """What one run did. Persisted as the last run status."""
    run_id: str
    started_at: datetime
    status: RunStatus = RunStatus.RUNNING
    stage: RunStage = RunStage.IDLE
    finished_at: Optional[datetime] = None
    notifications: int = 0
    candidates: int = 0
    new_articles: int = 0
    article_errors: int = 0
    new_reports: int = 0
    lineage_edges_added: int = 0
    source_errors: int = 0
    pending_sources: int = 0
    committed_items: int = 0
    failed_stage: Optional[RunStage] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return serialize_dataclass(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunReport:
        failed_stage = data.get("failed_stage")
        return cls(
            run_id=data["run_id"],
            started_at=parse_datetime(data["started_at"]),
            status=RunStatus(data.get("status", RunStatus.SUCCEEDED.value)),
            stage=RunStage(data.get("stage", RunStage.IDLE.value)),
            finished_at=parse_datetime(data.get("finished_at")),
            notifications=data.get("notifications", 0),
            candidates=data.get("candidates", 0),
            new_articles=data.get("new_articles", 0),
            article_errors=data.get("article_errors", 0),
            new_reports=data.get("new_reports", 0),
            lineage_edges_added=data.get("lineage_edges_added", 0),
            source_errors=data.get("source_errors", 0),
            pending_sources=data.get("pending_sources", 0),
            committed_items=data.get("committed_items", 0),
            failed_stage=RunStage(failed_stage) if failed_stage else None,
            error=data.get("error"),
        )


@dataclass
class TrackerStats:
    """Read-only counts exposed by the trigger surface."""
    total_notifications_seen: int
    total_processed_articles: int
    total_unique_reports: int
    unread_reports: int
    pending_sources: int
    failed_sources: int
    current_stage: RunStage
    last_run: Optional[RunReport] = None


class OrchestrationFailure(RuntimeError):
    """A model engine was unreachable; the run was aborted."""

    def __init__(self, stage: RunStage, committed_items: int, cause: Exception) -> None:
        super().__init__(
            f"Run aborted during {stage.value}: {cause} ({committed_items} items committed)"
        )
        self.stage = stage
        self.committed_items = committed_items
        self.cause = cause


class RunInProgressError(RuntimeError):
    """A second run was triggered while one is still in progress."""


class RunCancelled(RuntimeError):
    """The run was cancelled at a stage boundary; nothing was committed."""

    def __init__(self, stage: RunStage) -> None:
        super().__init__(f"Run cancelled before {stage.value}")
        self.stage = stage
