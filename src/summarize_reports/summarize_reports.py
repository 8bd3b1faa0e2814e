"""Batched extraction of structured report fields from original sources."""

from __future__ import annotations

import logging
from typing import Any

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt

from canonicalize_urls.canonicalize import try_canonicalize
from common.llm import JsonModel, ModelOutputError
from common.utils import truncate
from dedupe_reports.models import Severity
from summarize_reports.instructions import SUMMARIZE_REPORTS_INSTRUCTIONS
from summarize_reports.models import ReportSummary, SourceForSummary, SummaryOutcome

logger = logging.getLogger(__name__)

REQUIRED_TEXT_FIELDS = ("title", "summary", "attackMechanism", "noveltyFactor", "discoveryDate")


class SummarizationError(ModelOutputError):
    """Summarizer output is malformed or violates the response schema."""


def _parse_report(entry: dict[str, Any], source_url: str) -> ReportSummary:
    """Validate one report entry. Raises ValueError naming the offending field."""
    for key in REQUIRED_TEXT_FIELDS:
        if not isinstance(entry.get(key), str) or not entry[key].strip():
            raise ValueError(f"missing or empty '{key}'")

    affected = entry.get("affectedSystems", [])
    if isinstance(affected, str):
        affected = [affected]
    if not isinstance(affected, list) or not all(isinstance(s, str) for s in affected):
        raise ValueError("'affectedSystems' is not a list of strings")

    severity_value = entry.get("severity")
    try:
        severity = Severity(str(severity_value).strip().lower())
    except ValueError:
        raise ValueError(f"invalid severity {severity_value!r}") from None

    domain_specific = entry.get("domainSpecific")
    if not isinstance(domain_specific, bool):
        raise ValueError("'domainSpecific' is not a boolean")

    return ReportSummary(
        source_url=source_url,
        title=entry["title"].strip(),
        summary=entry["summary"].strip(),
        attack_mechanism=entry["attackMechanism"].strip(),
        affected_systems=[s.strip() for s in affected if s.strip()],
        novelty_factor=entry["noveltyFactor"].strip(),
        severity=severity,
        discovery_date=entry["discoveryDate"].strip(),
        domain_specific=domain_specific,
        domain_classification_reasoning=str(entry.get("domainClassificationReasoning") or "").strip(),
    )


def _index_reports(data: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Check the response envelope and index report entries by canonical URL."""
    reports = data.get("reports")
    if not isinstance(reports, list):
        raise SummarizationError("Response has no 'reports' list")

    indexed = {}
    for entry in reports:
        if not isinstance(entry, dict):
            raise SummarizationError(f"Report entry is not an object: {entry!r}")
        url = entry.get("url")
        canonical = try_canonicalize(url) if isinstance(url, str) else None
        if canonical is None:
            raise SummarizationError(f"Report entry has no usable 'url': {url!r}")
        indexed.setdefault(canonical, entry)
    return indexed


def _to_outcomes(indexed: dict[str, dict[str, Any]], items: list[SourceForSummary]) -> list[SummaryOutcome]:
    outcomes = []
    for item in items:
        entry = indexed.get(item.source_url)
        if entry is None:
            outcomes.append(SummaryOutcome(source_url=item.source_url, error="No summary returned for this source"))
            continue
        try:
            summary = _parse_report(entry, item.source_url)
        except ValueError as e:
            outcomes.append(SummaryOutcome(source_url=item.source_url, error=f"Invalid summary: {e}"))
            continue
        outcomes.append(SummaryOutcome(source_url=item.source_url, summary=summary))
    return outcomes


def summarize_reports(
    items: list[SourceForSummary],
    model: JsonModel,
    char_limit: int | None = 32000,
    retries: int = 1,
) -> list[SummaryOutcome]:
    """
    Summarize a batch of original reports in a single model call.

    Malformed or schema-violating output (including a missing or invalid
    entry for any requested source) retries the whole call. Once retries
    are spent, the last well-formed response is used entry by entry and
    only the bad entries fail; if no response was well-formed every item
    gets an error outcome. EngineUnavailable is not caught and aborts the
    caller.

    Args:
        items: Novel, fetched sources
        model: JSON-mode chat model
        char_limit: Maximum characters of content sent per source (None for no limit)
        retries: Full-batch retries after the first attempt

    Returns:
        One SummaryOutcome per input item, in input order
    """
    if not items:
        logger.warning("No sources to summarize")
        return []

    request = {
        "items": [
            {"url": item.source_url, "content": truncate(item.content, char_limit)}
            for item in items
        ]
    }

    # Outcomes of the latest response whose envelope parsed
    last_outcomes: list[SummaryOutcome] | None = None

    def _attempt() -> list[SummaryOutcome]:
        nonlocal last_outcomes
        indexed = _index_reports(model.complete(SUMMARIZE_REPORTS_INSTRUCTIONS, request))
        outcomes = _to_outcomes(indexed, items)
        last_outcomes = outcomes
        bad = [o for o in outcomes if not o.ok]
        if bad:
            raise SummarizationError(f"{len(bad)} of {len(items)} summaries unusable, first: {bad[0].error}")
        return outcomes

    logger.info("Summarizing %d sources", len(items))
    retrying = Retrying(
        stop=stop_after_attempt(retries + 1),
        retry=retry_if_exception_type(ModelOutputError),
        reraise=True,
    )
    try:
        outcomes = retrying(_attempt)
    except ModelOutputError as e:
        if last_outcomes is None:
            logger.warning("Summarization failed for batch of %d: %s", len(items), e)
            return [
                SummaryOutcome(source_url=item.source_url, error=f"Summarization failed: {e}")
                for item in items
            ]
        outcomes = last_outcomes
        for outcome in outcomes:
            if not outcome.ok:
                logger.warning("Summary for %s unusable: %s", outcome.source_url, outcome.error)

    logger.info(
        "Summarized %d of %d sources",
        sum(1 for o in outcomes if o.ok),
        len(outcomes),
    )
    return outcomes
