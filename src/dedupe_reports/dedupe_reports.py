"""Insert-only index of canonical source reports."""

from __future__ import annotations

import logging
from typing import Iterable, Iterator

from common.utils import DuplicateKeyError
from dedupe_reports.models import CanonicalSource, LineageEdge, NoveltySplit

logger = logging.getLogger(__name__)


class ReportDeduplicator:
    """
    Dedup index keyed by canonical source URL.

    Summary fields of a report are written once at insert. Rediscovery only
    grows the lineage list.
    """

    def __init__(self, reports: Iterable[CanonicalSource] = ()) -> None:
        self._reports: dict[str, CanonicalSource] = {}
        for report in reports:
            self.insert(report)

    def __len__(self) -> int:
        return len(self._reports)

    def __iter__(self) -> Iterator[CanonicalSource]:
        return iter(self._reports.values())

    def __contains__(self, source_url: object) -> bool:
        return source_url in self._reports

    def is_known(self, source_url: str) -> bool:
        return source_url in self._reports

    def get(self, source_url: str) -> CanonicalSource | None:
        return self._reports.get(source_url)

    def filter_novel(self, candidate_source_urls: Iterable[str]) -> NoveltySplit:
        """
        Split candidate URLs into novel and already-known ones.

        Duplicates in the input are collapsed; first-seen order is kept.
        """
        split = NoveltySplit()
        seen: set[str] = set()
        for url in candidate_source_urls:
            if url in seen:
                continue
            seen.add(url)
            if url in self._reports:
                split.known.append(url)
            else:
                split.novel.append(url)
        return split

    def insert(self, report: CanonicalSource) -> None:
        if report.source_url in self._reports:
            raise DuplicateKeyError(f"Source already recorded: {report.source_url}")
        self._reports[report.source_url] = report

    def append_lineage(self, source_url: str, edge: LineageEdge) -> bool:
        """Add a lineage edge to a known report. Returns False if the edge already exists."""
        report = self._reports.get(source_url)
        if report is None:
            raise KeyError(f"Unknown source: {source_url}")
        if edge in report.lineage:
            return False
        report.lineage.append(edge)
        return True

    def merge(self, reports: Iterable[CanonicalSource]) -> tuple[int, int]:
        """
        Insert reports whose source URL is not yet known.

        Returns:
            Tuple of (added, skipped)
        """
        added = skipped = 0
        for report in reports:
            if report.source_url in self._reports:
                skipped += 1
                continue
            self._reports[report.source_url] = report
            added += 1
        logger.info("Merged %d reports (%d duplicates skipped)", added, skipped)
        return added, skipped
