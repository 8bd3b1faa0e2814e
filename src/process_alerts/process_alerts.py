"""Run the alert-to-report pipeline once, as an explicit stage machine."""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from common.hashing import generate_item_id
from common.llm import EngineUnavailable, JsonModel
from common.local_io import LockHeldError, lock_file
from dedupe_reports.dedupe_reports import ReportDeduplicator
from dedupe_reports.models import CanonicalSource, FailedSource, LineageEdge, PendingSource
from fetch_content.fetch_content import ContentFetcher, fetch_all
from parse_notifications.models import CandidateArticle
from parse_notifications.parse_notifications import parse_notifications, split_first_mentions
from parse_notifications.sources import NotificationSource
from process_alerts.models import (
    OrchestrationFailure,
    PipelineConfig,
    RunCancelled,
    RunInProgressError,
    RunReport,
    RunStage,
    RunStatus,
    TrackerStats,
)
from process_alerts.state import StateStore, TrackerState
from resolve_links.models import ArticleForResolution, LinkResolution
from resolve_links.resolve_links import resolve_links
from summarize_reports.models import SourceForSummary
from summarize_reports.summarize_reports import summarize_reports
from track_articles.models import Classification, ProcessedArticle
from track_articles.track_articles import ArticleTracker

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunDelta:
    """Everything a run will write. Applied to persisted state only at commit."""
    seen_notification_ids: set[str] = field(default_factory=set)
    new_articles: list[ProcessedArticle] = field(default_factory=list)
    lineage: dict[str, list[LineageEdge]] = field(default_factory=dict)
    pending: dict[str, PendingSource] = field(default_factory=dict)
    new_reports: list[CanonicalSource] = field(default_factory=list)
    failed_sources: list[FailedSource] = field(default_factory=list)
    # Later mentions of an article first seen in this run, linked once it is classified
    repeat_mentions: list[CandidateArticle] = field(default_factory=list)
    # Lineage for sources that previously failed, keyed by source URL
    failed_lineage: dict[str, list[LineageEdge]] = field(default_factory=dict)


class AlertProcessor:
    """
    Turns unseen notifications into new canonical reports, exactly once.

    Stages: collecting-candidates -> fetching-articles -> classifying-articles
    -> resolving-sources -> fetching-sources -> summarizing -> committing.
    Persisted state is read at the start of a run and written once, at
    commit. The only exception is an unreachable summarization engine, where
    the work of the completed stages is committed before the run aborts so
    the next run only redoes the summarization tail.
    """

    def __init__(
        self,
        store: StateStore,
        source: NotificationSource,
        fetcher: ContentFetcher,
        model: JsonModel,
        config: PipelineConfig | None = None,
        lock_path: str | Path | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.source = source
        self.fetcher = fetcher
        self.model = model
        self.config = config or PipelineConfig()
        self.lock_path = lock_path if lock_path is not None else getattr(store, "lock_path", None)
        self.clock = clock
        self.stage = RunStage.IDLE
        self.last_run: RunReport | None = None
        self._run_guard = threading.Lock()

    def process(self, cancel_event: threading.Event | None = None) -> RunReport:
        """
        Run the pipeline once.

        Raises:
            RunInProgressError: Another run holds the in-process guard or lock file.
            RunCancelled: cancel_event was set; nothing was committed.
            OrchestrationFailure: A model engine was unreachable.
        """
        if not self._run_guard.acquire(blocking=False):
            raise RunInProgressError("A run is already in progress")
        try:
            lock = lock_file(self.lock_path) if self.lock_path else nullcontext()
            try:
                with lock:
                    return self._process(cancel_event or threading.Event())
            except LockHeldError as e:
                raise RunInProgressError(str(e)) from e
        finally:
            self.stage = RunStage.IDLE
            self._run_guard.release()

    def stats(self) -> TrackerStats:
        state = self.store.load()
        return TrackerStats(
            total_notifications_seen=len(state.seen_notification_ids),
            total_processed_articles=len(state.processed_articles),
            total_unique_reports=len(state.reports),
            unread_reports=sum(1 for r in state.reports if not r.is_read),
            pending_sources=len(state.pending_sources),
            failed_sources=len(state.failed_sources),
            current_stage=self.stage,
            last_run=self.last_run or state.last_run,
        )

    def _process(self, cancel_event: threading.Event) -> RunReport:
        report = RunReport(run_id=uuid.uuid4().hex[:12], started_at=self.clock())
        self.last_run = report

        state = self.store.load()
        tracker = ArticleTracker(state.processed_articles)
        dedup = ReportDeduplicator(state.reports)
        delta = RunDelta()
        for pending in copy.deepcopy(state.pending_sources):
            if pending.source_url in dedup:
                # Summarized elsewhere (e.g. imported) since it was queued
                delta.lineage.setdefault(pending.source_url, []).extend(pending.lineage)
            else:
                delta.pending[pending.source_url] = pending

        try:
            candidates = self._collect_candidates(state, tracker, dedup, delta, report, cancel_event)

            if not candidates and not delta.pending and not delta.lineage and not delta.failed_lineage:
                logger.info("No new candidates, nothing to do")
                report.status = RunStatus.NO_OP
                report.finished_at = self.clock()
                if delta.seen_notification_ids:
                    state.seen_notification_ids |= delta.seen_notification_ids
                    state.last_run = report
                    self.store.save(state)
                return report

            fetched = self._fetch_articles(candidates, delta, report, cancel_event)
            resolutions = self._classify_articles(fetched, report, cancel_event)
            self._resolve_sources(candidates, resolutions, dedup, delta, report, cancel_event)
            sources = self._fetch_sources(fetched, delta, report, cancel_event)

            try:
                self._summarize(sources, delta, report, cancel_event)
            except EngineUnavailable as e:
                report.status = RunStatus.FAILED
                report.failed_stage = RunStage.SUMMARIZING
                report.error = str(e)
                committed = self._commit(state, tracker, dedup, delta, report)
                raise OrchestrationFailure(RunStage.SUMMARIZING, committed, e) from e

            self._enter(RunStage.COMMITTING, report, cancel_event)
            self._commit(state, tracker, dedup, delta, report)

        except RunCancelled as e:
            report.status = RunStatus.CANCELLED
            report.error = str(e)
            report.finished_at = self.clock()
            logger.warning("Run %s cancelled before %s; nothing committed", report.run_id, e.stage.value)
            raise
        except OrchestrationFailure as e:
            report.status = RunStatus.FAILED
            report.failed_stage = e.stage
            report.error = str(e.cause)
            report.finished_at = report.finished_at or self.clock()
            logger.error("Run %s failed: %s", report.run_id, e)
            raise

        logger.info(
            "Run %s done: %d new articles (%d errors), %d new reports, %d lineage edges, %d source errors",
            report.run_id,
            report.new_articles,
            report.article_errors,
            report.new_reports,
            report.lineage_edges_added,
            report.source_errors,
        )
        return report

    def _enter(self, stage: RunStage, report: RunReport, cancel_event: threading.Event) -> None:
        if cancel_event.is_set():
            raise RunCancelled(stage)
        self.stage = stage
        report.stage = stage
        logger.info("Run %s: %s", report.run_id, stage.value)

    def _collect_candidates(
        self,
        state: TrackerState,
        tracker: ArticleTracker,
        dedup: ReportDeduplicator,
        delta: RunDelta,
        report: RunReport,
        cancel_event: threading.Event,
    ) -> list[CandidateArticle]:
        """
        Return first mentions of articles not processed yet.

        Mentions of already processed articles are never fetched again; they
        only add lineage edges to the sources those articles led to.
        """
        self._enter(RunStage.COLLECTING_CANDIDATES, report, cancel_event)

        notifications = self.source.fetch_notifications(set(state.seen_notification_ids))
        delta.seen_notification_ids = {n.id for n in notifications}
        report.notifications = len(notifications)

        first, repeats = split_first_mentions(parse_notifications(notifications, self.config.tracking_params))

        new_candidates = []
        known = 0
        for candidate in first:
            article = tracker.get(candidate.canonical_url)
            if article is None:
                new_candidates.append(candidate)
                continue
            self._link_mention(candidate, article, dedup, delta)
            known += 1
        for candidate in repeats:
            article = tracker.get(candidate.canonical_url)
            if article is None:
                delta.repeat_mentions.append(candidate)
                continue
            self._link_mention(candidate, article, dedup, delta)
            known += 1
        report.candidates = len(new_candidates)

        logger.info(
            "%d notifications -> %d new candidates (%d mentions of processed articles, %d repeats in this run)",
            len(notifications),
            len(new_candidates),
            known,
            len(delta.repeat_mentions),
        )
        return new_candidates

    def _link_mention(
        self,
        mention: CandidateArticle,
        article: ProcessedArticle,
        dedup: ReportDeduplicator,
        delta: RunDelta,
    ) -> None:
        """Add the mention's lineage edge to every source the article already led to."""
        edge = LineageEdge(article_url=article.article_url, notification_id=mention.notification_id)
        for source_url in article.discovered_source_urls:
            if source_url in dedup:
                edges = delta.lineage.setdefault(source_url, [])
            elif source_url in delta.pending:
                delta.pending[source_url].add_edge(edge)
                continue
            else:
                edges = delta.failed_lineage.setdefault(source_url, [])
            if edge not in edges:
                edges.append(edge)

    def _fetch(self, urls: list[str], cancel_event: threading.Event):
        return fetch_all(
            urls,
            self.fetcher,
            timeout=self.config.fetch_timeout_seconds,
            max_workers=self.config.max_workers,
            max_retries=self.config.max_fetch_retries,
            backoff_base=self.config.backoff_base_seconds,
            backoff_max=self.config.backoff_max_seconds,
            cancel_event=cancel_event,
        )

    def _fetch_articles(
        self,
        candidates: list[CandidateArticle],
        delta: RunDelta,
        report: RunReport,
        cancel_event: threading.Event,
    ) -> dict[str, str]:
        self._enter(RunStage.FETCHING_ARTICLES, report, cancel_event)

        outcomes = self._fetch([c.canonical_url for c in candidates], cancel_event)
        if cancel_event.is_set():
            raise RunCancelled(RunStage.CLASSIFYING_ARTICLES)

        fetched = {}
        now = self.clock()
        for candidate in candidates:
            outcome = outcomes.get(candidate.canonical_url)
            if outcome is not None and outcome.ok:
                fetched[candidate.canonical_url] = outcome.content.content
                continue

            error = outcome.error if outcome is not None else "not fetched"
            delta.new_articles.append(
                ProcessedArticle(
                    article_url=candidate.canonical_url,
                    source_notification_id=candidate.notification_id,
                    processed_at=now,
                    classification=Classification.ERROR,
                    notes=f"Fetch failed: {error}",
                )
            )
            report.article_errors += 1

        return fetched

    def _classify_articles(
        self,
        fetched: dict[str, str],
        report: RunReport,
        cancel_event: threading.Event,
    ) -> list[LinkResolution]:
        self._enter(RunStage.CLASSIFYING_ARTICLES, report, cancel_event)
        if not fetched:
            return []

        items = [
            ArticleForResolution(article_id=generate_item_id(url), article_url=url, content=content)
            for url, content in fetched.items()
        ]
        try:
            return resolve_links(
                items,
                self.model,
                char_limit=self.config.article_char_limit,
                retries=self.config.model_retries,
                tracking_params=self.config.tracking_params,
            )
        except EngineUnavailable as e:
            raise OrchestrationFailure(RunStage.CLASSIFYING_ARTICLES, 0, e) from e

    def _resolve_sources(
        self,
        candidates: list[CandidateArticle],
        resolutions: list[LinkResolution],
        dedup: ReportDeduplicator,
        delta: RunDelta,
        report: RunReport,
        cancel_event: threading.Event,
    ) -> None:
        self._enter(RunStage.RESOLVING_SOURCES, report, cancel_event)

        by_url = {c.canonical_url: c for c in candidates}
        now = self.clock()
        for resolution in resolutions:
            candidate = by_url[resolution.article_url]
            delta.new_articles.append(
                ProcessedArticle(
                    article_url=resolution.article_url,
                    source_notification_id=candidate.notification_id,
                    processed_at=now,
                    classification=resolution.classification,
                    discovered_source_urls=list(resolution.security_report_links),
                    notes=resolution.notes,
                )
            )
            if resolution.classification is Classification.ERROR:
                report.article_errors += 1
                continue

            edge = LineageEdge(article_url=resolution.article_url, notification_id=candidate.notification_id)
            split = dedup.filter_novel(resolution.security_report_links)
            for url in split.known:
                edges = delta.lineage.setdefault(url, [])
                if edge not in edges:
                    edges.append(edge)
            for url in split.novel:
                pending = delta.pending.get(url)
                if pending is None:
                    pending = delta.pending[url] = PendingSource(source_url=url, queued_at=now)
                pending.add_edge(edge)

        in_run = {a.article_url: a for a in delta.new_articles}
        for mention in delta.repeat_mentions:
            self._link_mention(mention, in_run[mention.canonical_url], dedup, delta)

        logger.info(
            "%d known sources rediscovered, %d sources queued for summarization",
            len(delta.lineage),
            len(delta.pending),
        )

    def _fail_source(self, delta: RunDelta, source_url: str, error: str, report: RunReport) -> None:
        pending = delta.pending.pop(source_url)
        delta.failed_sources.append(
            FailedSource(
                source_url=source_url,
                error=error,
                failed_at=self.clock(),
                lineage=list(pending.lineage),
            )
        )
        report.source_errors += 1

        note = f"Source {source_url} failed: {error}"
        for article in delta.new_articles:
            if source_url in article.discovered_source_urls:
                article.notes = f"{article.notes}; {note}" if article.notes else note

    def _fetch_sources(
        self,
        fetched: dict[str, str],
        delta: RunDelta,
        report: RunReport,
        cancel_event: threading.Event,
    ) -> list[SourceForSummary]:
        self._enter(RunStage.FETCHING_SOURCES, report, cancel_event)

        urls = list(delta.pending)
        # Original reports were already fetched as articles this run
        contents = {url: fetched[url] for url in urls if url in fetched}
        to_fetch = [url for url in urls if url not in contents]

        outcomes = self._fetch(to_fetch, cancel_event)
        if cancel_event.is_set():
            raise RunCancelled(RunStage.SUMMARIZING)

        for url in to_fetch:
            outcome = outcomes.get(url)
            if outcome is not None and outcome.ok:
                contents[url] = outcome.content.content
            else:
                self._fail_source(delta, url, outcome.error if outcome else "not fetched", report)

        return [SourceForSummary(source_url=url, content=contents[url]) for url in urls if url in contents]

    def _summarize(
        self,
        sources: list[SourceForSummary],
        delta: RunDelta,
        report: RunReport,
        cancel_event: threading.Event,
    ) -> None:
        self._enter(RunStage.SUMMARIZING, report, cancel_event)
        if not sources:
            return

        outcomes = summarize_reports(
            sources,
            self.model,
            char_limit=self.config.source_char_limit,
            retries=self.config.model_retries,
        )

        now = self.clock()
        for outcome in outcomes:
            if not outcome.ok:
                self._fail_source(delta, outcome.source_url, outcome.error, report)
                continue

            pending = delta.pending.pop(outcome.source_url)
            summary = outcome.summary
            delta.new_reports.append(
                CanonicalSource(
                    source_url=summary.source_url,
                    title=summary.title,
                    summary=summary.summary,
                    attack_mechanism=summary.attack_mechanism,
                    affected_systems=summary.affected_systems,
                    novelty_factor=summary.novelty_factor,
                    severity=summary.severity,
                    discovery_date=summary.discovery_date,
                    added_at=now,
                    domain_specific=summary.domain_specific,
                    domain_classification_reasoning=summary.domain_classification_reasoning,
                    lineage=list(pending.lineage),
                )
            )

    def _commit(
        self,
        state: TrackerState,
        tracker: ArticleTracker,
        dedup: ReportDeduplicator,
        delta: RunDelta,
        report: RunReport,
    ) -> int:
        """Apply the run delta to the indices and save. Returns the number of records written."""
        self.stage = RunStage.COMMITTING
        report.stage = RunStage.COMMITTING
        committed = 0

        for article in delta.new_articles:
            tracker.record(article)
            committed += 1

        for source_url, edges in delta.lineage.items():
            for edge in edges:
                if dedup.append_lineage(source_url, edge):
                    report.lineage_edges_added += 1
                    committed += 1

        failed_by_url = {f.source_url: f for f in state.failed_sources}
        for failed in delta.failed_sources:
            failed_by_url[failed.source_url] = failed
            committed += 1
        for source_url, edges in delta.failed_lineage.items():
            failed = failed_by_url.get(source_url)
            if failed is None:
                logger.warning("Dropping lineage for untracked source %s", source_url)
                continue
            for edge in edges:
                if edge not in failed.lineage:
                    failed.lineage.append(edge)
                    committed += 1

        for new_report in delta.new_reports:
            dedup.insert(new_report)
            failed_by_url.pop(new_report.source_url, None)
            committed += 1

        report.new_articles = len(delta.new_articles)
        report.new_reports = len(delta.new_reports)
        report.pending_sources = len(delta.pending)
        report.committed_items = committed
        if report.status is RunStatus.RUNNING:
            report.status = RunStatus.SUCCEEDED
        report.finished_at = self.clock()

        self.store.save(
            TrackerState(
                processed_articles=list(tracker),
                reports=list(dedup),
                pending_sources=list(delta.pending.values()),
                failed_sources=list(failed_by_url.values()),
                seen_notification_ids=state.seen_notification_ids | delta.seen_notification_ids,
                last_run=report,
            )
        )
        return committed
