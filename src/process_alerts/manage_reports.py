"""Operations on persisted reports outside of a pipeline run."""

from __future__ import annotations

import logging
from contextlib import contextmanager, nullcontext
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator

from canonicalize_urls.canonicalize import InvalidURL, canonicalize
from common.local_io import LockHeldError, lock_file
from dedupe_reports.dedupe_reports import ReportDeduplicator
from dedupe_reports.models import CanonicalSource, PendingSource
from process_alerts.models import RunInProgressError
from process_alerts.state import StateStore, TrackerState
from track_articles.track_articles import ArticleTracker

logger = logging.getLogger(__name__)


@contextmanager
def _locked_state(store: StateStore) -> Iterator[TrackerState]:
    """Load state under the store's lock file and save it if the block succeeds."""
    lock_path = getattr(store, "lock_path", None)
    lock = lock_file(lock_path) if lock_path else nullcontext()
    try:
        with lock:
            state = store.load()
            yield state
            store.save(state)
    except LockHeldError as e:
        raise RunInProgressError(str(e)) from e


def _find_report(
    state: TrackerState,
    source_url: str,
    tracking_params: Iterable[str] | None = None,
) -> CanonicalSource:
    key = canonicalize(source_url, tracking_params)
    for report in state.reports:
        if report.source_url == key:
            return report
    raise KeyError(f"No report for {source_url}")


def import_reports(
    store: StateStore,
    records: Iterable[dict[str, Any]],
    tracking_params: Iterable[str] | None = None,
) -> tuple[int, int]:
    """
    Merge exported reports into the store, keyed by canonical source URL.

    Records whose URL is already known (or appears twice in the input) are
    skipped, as are records that cannot be parsed. Pass the same
    tracking_params the pipeline runs with so keys match.

    Returns:
        Tuple of (added, skipped)
    """
    parsed = []
    invalid = 0
    now = datetime.now(timezone.utc)
    for record in records:
        try:
            report = CanonicalSource.from_dict(record)
            report.source_url = canonicalize(report.source_url, tracking_params)
        except (InvalidURL, KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping invalid report record: %s", e)
            invalid += 1
            continue
        if report.added_at is None:
            report.added_at = now
        parsed.append(report)

    with _locked_state(store) as state:
        dedup = ReportDeduplicator(state.reports)
        added, skipped = dedup.merge(parsed)
        state.reports = list(dedup)

    return added, skipped + invalid


def export_reports(store: StateStore) -> list[dict[str, Any]]:
    return [report.to_dict() for report in store.load().reports]


def set_read(
    store: StateStore,
    source_url: str,
    is_read: bool = True,
    tracking_params: Iterable[str] | None = None,
) -> CanonicalSource:
    with _locked_state(store) as state:
        report = _find_report(state, source_url, tracking_params)
        report.is_read = is_read
    return report


def annotate_report(
    store: StateStore,
    source_url: str,
    notes: str | None = None,
    tags: list[str] | None = None,
    tracking_params: Iterable[str] | None = None,
) -> CanonicalSource:
    """Set user notes and/or tags on a report. Summary fields are never touched."""
    with _locked_state(store) as state:
        report = _find_report(state, source_url, tracking_params)
        if notes is not None:
            report.user_notes = notes
        if tags is not None:
            report.tags = sorted({t.strip() for t in tags if t.strip()})
    return report


def retry_errors(store: StateStore) -> tuple[int, int]:
    """
    Make recorded per-item errors eligible for the next run.

    Error-classified articles are forgotten and their notifications marked
    unseen so they are parsed again. Failed sources are queued again with
    their lineage.

    Returns:
        Tuple of (articles_reset, sources_requeued)
    """
    with _locked_state(store) as state:
        tracker = ArticleTracker(state.processed_articles)
        forgotten = tracker.forget_errors()
        state.processed_articles = list(tracker)
        state.seen_notification_ids -= {a.source_notification_id for a in forgotten}

        pending = {p.source_url: p for p in state.pending_sources}
        for failed in state.failed_sources:
            entry = pending.get(failed.source_url)
            if entry is None:
                entry = pending[failed.source_url] = PendingSource(
                    source_url=failed.source_url,
                    queued_at=datetime.now(timezone.utc),
                )
            for edge in failed.lineage:
                entry.add_edge(edge)
        requeued = len(state.failed_sources)
        state.pending_sources = list(pending.values())
        state.failed_sources = []

    logger.info("Reset %d errored articles, requeued %d failed sources", len(forgotten), requeued)
    return len(forgotten), requeued
