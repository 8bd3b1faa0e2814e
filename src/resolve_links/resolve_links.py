"""Batched classification of fetched articles into candidate source links."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt

from canonicalize_urls.canonicalize import InvalidURL, canonicalize
from common.llm import JsonModel, ModelOutputError
from common.utils import truncate
from resolve_links.instructions import LINK_RESOLUTION_INSTRUCTIONS
from resolve_links.models import ArticleForResolution, LinkResolution
from track_articles.models import Classification

logger = logging.getLogger(__name__)

# Labels the model sometimes uses for the same verdicts
CLASSIFICATION_ALIASES = {
    "has-security-links": Classification.HAS_SOURCES,
    "no-security-links": Classification.NO_SOURCES,
}


class ClassificationError(ModelOutputError):
    """Classifier output is malformed or violates the response schema."""


def _parse_classification(value: Any) -> Classification:
    if isinstance(value, str) and value in CLASSIFICATION_ALIASES:
        return CLASSIFICATION_ALIASES[value]
    try:
        classification = Classification(value)
    except ValueError as e:
        raise ClassificationError(f"Unknown classification: {value!r}") from e
    if classification is Classification.ERROR:
        raise ClassificationError("Model may not return the 'error' classification")
    return classification


def _parse_response(data: dict[str, Any]) -> dict[str, tuple[Classification, list[str]]]:
    """Validate the raw classifier response and index verdicts by item id."""
    articles = data.get("articles")
    if not isinstance(articles, list):
        raise ClassificationError("Response has no 'articles' list")

    verdicts = {}
    for entry in articles:
        if not isinstance(entry, dict):
            raise ClassificationError(f"Article entry is not an object: {entry!r}")

        item_id = entry.get("id")
        if not item_id:
            raise ClassificationError("Article entry is missing 'id'")

        links = entry.get("securityReportLinks", [])
        if links is None:
            links = []
        if not isinstance(links, list) or not all(isinstance(link, str) for link in links):
            raise ClassificationError(f"securityReportLinks for {item_id} is not a list of strings")

        verdicts[str(item_id)] = (_parse_classification(entry.get("classification")), links)

    return verdicts


def _canonical_links(links: list[str], tracking_params: Iterable[str] | None) -> list[str]:
    canonical = []
    for link in links:
        try:
            url = canonicalize(link, tracking_params)
        except InvalidURL:
            logger.debug("Dropping invalid source link: %s", link)
            continue
        if url not in canonical:
            canonical.append(url)
    return canonical


def _to_resolution(
    item: ArticleForResolution,
    classification: Classification,
    links: list[str],
    tracking_params: Iterable[str] | None,
) -> LinkResolution:
    if classification is Classification.IS_ORIGINAL_REPORT:
        source_urls = [item.article_url]
    elif classification is Classification.NO_SOURCES:
        source_urls = []
    else:
        source_urls = _canonical_links(links, tracking_params)

    return LinkResolution(
        article_id=item.article_id,
        article_url=item.article_url,
        classification=classification,
        security_report_links=source_urls,
    )


def resolve_links(
    items: list[ArticleForResolution],
    model: JsonModel,
    char_limit: int | None = 16000,
    retries: int = 1,
    tracking_params: Iterable[str] | None = None,
) -> list[LinkResolution]:
    """
    Classify a batch of articles in a single model call.

    Malformed or schema-violating output retries the whole call; if every
    attempt fails each item is returned with the error classification.
    EngineUnavailable is not caught and aborts the caller.

    Args:
        items: Fetched articles to classify
        model: JSON-mode chat model
        char_limit: Maximum characters of content sent per article (None for no limit)
        retries: Full-batch retries after the first attempt
        tracking_params: Extra query parameters to strip from discovered links

    Returns:
        One LinkResolution per input item, in input order
    """
    if not items:
        logger.warning("No articles to classify")
        return []

    request = {
        "items": [
            {"id": item.article_id, "url": item.article_url, "content": truncate(item.content, char_limit)}
            for item in items
        ]
    }

    logger.info("Classifying %d articles", len(items))
    retrying = Retrying(
        stop=stop_after_attempt(retries + 1),
        retry=retry_if_exception_type(ModelOutputError),
        reraise=True,
    )
    try:
        verdicts = retrying(lambda: _parse_response(model.complete(LINK_RESOLUTION_INSTRUCTIONS, request)))
    except ModelOutputError as e:
        logger.warning("Classification failed for batch of %d: %s", len(items), e)
        return [
            LinkResolution(
                article_id=item.article_id,
                article_url=item.article_url,
                classification=Classification.ERROR,
                notes=f"Classification failed: {e}",
            )
            for item in items
        ]

    results = []
    for item in items:
        verdict = verdicts.get(item.article_id)
        if verdict is None:
            logger.warning("No classification returned for %s", item.article_url)
            results.append(
                LinkResolution(
                    article_id=item.article_id,
                    article_url=item.article_url,
                    classification=Classification.ERROR,
                    notes="No classification returned for this article",
                )
            )
            continue
        classification, links = verdict
        results.append(_to_resolution(item, classification, links, tracking_params))

    unknown = set(verdicts) - {item.article_id for item in items}
    if unknown:
        logger.warning("Ignoring %d classifications for unknown ids", len(unknown))

    logger.info("Classified %d articles", len(results))
    return results
