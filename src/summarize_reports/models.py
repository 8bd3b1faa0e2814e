"""Data models for the summarize_reports pipeline stage."""

from dataclasses import dataclass
from typing import Optional

from dedupe_reports.models import Severity


@dataclass
class SourceForSummary:
    """A novel, successfully fetched source sent to the summarizer."""
    source_url: str
    content: str


@dataclass
class ReportSummary:
    """Structured fields extracted from one original report."""
    source_url: str
    title: str
    summary: str
    attack_mechanism: str
    affected_systems: list[str]
    novelty_factor: str
    severity: Severity
    discovery_date: str
    domain_specific: bool
    domain_classification_reasoning: str


@dataclass
class SummaryOutcome:
    """Summary for one source, or the reason there is none."""
    source_url: str
    summary: Optional[ReportSummary] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.summary is not None
