"""Fetch page content with bounded retries and a bounded worker pool."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Protocol

import requests
import trafilatura
from lxml import html as lxml_html
from readability import Document
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from fetch_content.models import (
    FetchError,
    FetchHTTPError,
    FetchNetworkError,
    FetchOutcome,
    FetchTimeout,
    FetchedContent,
)

logger = logging.getLogger(__name__)

USER_AGENT = "report-tracker/1.0 (security alert reader)"
TEXT_CONTENT_TYPES = ("text/plain", "application/json", "text/markdown")


class ContentFetcher(Protocol):
    def fetch(self, url: str, timeout: float) -> FetchedContent:
        """Fetch one URL once, raising FetchError on failure."""
        ...


def extract_with_trafilatura(page_html: str) -> Optional[str]:
    return trafilatura.extract(page_html, include_links=True)


def extract_with_readability(page_html: str) -> Optional[str]:
    doc = Document(page_html)
    summary_html = doc.summary()

    tree = lxml_html.fromstring(summary_html)
    text = tree.text_content()

    lines = [line.strip() for line in text.splitlines() if line.strip()]
    return "\n".join(lines) if lines else None


def extract_text(page_html: str) -> str:
    """
    Extract readable text from an HTML page.

    Order:
    1. trafilatura
    2. readability-lxml

    Returns an empty string when both find nothing.
    """
    try:
        text = extract_with_trafilatura(page_html)
        if text:
            return text
    except Exception as e:
        logger.warning("trafilatura extraction failed: %s", e)

    try:
        text = extract_with_readability(page_html)
        if text:
            return text
    except Exception as e:
        logger.warning("readability extraction failed: %s", e)

    return ""


class WebContentFetcher:
    """HTTP fetcher. Performs exactly one request per call; callers own retries."""

    def __init__(self, session: requests.Session | None = None, user_agent: str = USER_AGENT) -> None:
        self.session = session or requests.Session()
        self.user_agent = user_agent

    def fetch(self, url: str, timeout: float) -> FetchedContent:
        try:
            response = self.session.get(
                url,
                timeout=timeout,
                headers={"User-Agent": self.user_agent},
            )
        except requests.Timeout as e:
            raise FetchTimeout(url) from e
        except requests.RequestException as e:
            raise FetchNetworkError(url, str(e)) from e

        if response.status_code >= 400:
            raise FetchHTTPError(url, response.status_code)

        content_type = response.headers.get("Content-Type", "")
        if content_type.startswith(TEXT_CONTENT_TYPES):
            content = response.text
        else:
            content = extract_text(response.text)

        return FetchedContent(
            url=url,
            content=content,
            metadata={
                "status": response.status_code,
                "final_url": response.url,
                "content_type": content_type,
            },
        )


def is_transient(error: BaseException) -> bool:
    """True for fetch failures worth retrying (timeouts, network, 5xx, 429)."""
    return isinstance(error, FetchError) and bool(error.transient)


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Retrying fetch (attempt %d failed): %s",
        retry_state.attempt_number,
        error,
    )


def fetch_with_retry(
    fetcher: ContentFetcher,
    url: str,
    timeout: float,
    max_retries: int = 2,
    backoff_base: float = 1.0,
    backoff_max: float = 30.0,
) -> FetchOutcome:
    """
    Fetch a URL, retrying transient failures with exponential backoff.

    Permanent failures (4xx other than 429) are not retried. Errors are
    returned as data on the outcome, never raised.

    Args:
        fetcher: Collaborator performing single fetch attempts
        url: URL to fetch
        timeout: Per-attempt timeout in seconds
        max_retries: Retries after the first attempt
        backoff_base: Multiplier for the exponential wait (0 disables waiting)
        backoff_max: Upper bound for a single wait in seconds

    Returns:
        FetchOutcome with content or an error note
    """
    retrying = Retrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=backoff_base, max=backoff_max),
        retry=retry_if_exception(is_transient),
        before_sleep=_log_retry,
        reraise=True,
    )

    try:
        content = retrying(fetcher.fetch, url, timeout)
    except FetchError as e:
        attempts = retrying.statistics.get("attempt_number", 1)
        logger.warning("Giving up on %s after %d attempt(s): %s", url, attempts, e)
        return FetchOutcome(url=url, error=str(e), attempts=attempts)

    return FetchOutcome(
        url=url,
        content=content,
        attempts=retrying.statistics.get("attempt_number", 1),
    )


def fetch_all(
    urls: list[str],
    fetcher: ContentFetcher,
    timeout: float,
    max_workers: int = 4,
    max_retries: int = 2,
    backoff_base: float = 1.0,
    backoff_max: float = 30.0,
    cancel_event: threading.Event | None = None,
) -> dict[str, FetchOutcome]:
    """
    Fetch independent URLs on a bounded worker pool.

    Workers never touch shared state; outcomes are collected and returned
    keyed by URL. Once cancel_event is set, queued fetches are skipped and
    in-flight ones finish on their own timeout.
    """
    if not urls:
        return {}

    def _work(url: str) -> FetchOutcome | None:
        if cancel_event is not None and cancel_event.is_set():
            return None
        return fetch_with_retry(fetcher, url, timeout, max_retries, backoff_base, backoff_max)

    logger.info("Fetching %d URLs (max_workers=%d)", len(urls), max_workers)

    outcomes: dict[str, FetchOutcome] = {}
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        for url, outcome in zip(urls, executor.map(_work, urls)):
            if outcome is not None:
                outcomes[url] = outcome

    failed = sum(1 for o in outcomes.values() if not o.ok)
    logger.info("Fetched %d URLs (%d failed)", len(outcomes), failed)
    return outcomes
