"""Extract candidate article links from alert notification bodies."""

import html
import logging
import re
from typing import Iterable

from canonicalize_urls.canonicalize import InvalidURL, canonicalize
from parse_notifications.models import CandidateArticle, RawNotification

logger = logging.getLogger(__name__)

# Google Alert digests render each hit as: NEWS [Title](https://www.google.com/url?...)
ALERT_LINK_RE = re.compile(
    r"(?:NEWS|WEB|BLOGS)\s+\[([^\]]+)\]\((https://www\.google\.com/url[^)\s]+)\)"
)
MARKDOWN_LINK_RE = re.compile(r"\[([^\]]*)\]\((https?://[^)\s]+)\)")
HREF_RE = re.compile(r"""href\s*=\s*["'](https?://[^"']+)["']""", re.IGNORECASE)
BARE_URL_RE = re.compile(r"""https?://[^\s<>"'\)\]]+""")

# Links in alert chrome that never point at an article
IGNORED_LINK_PATTERNS = (
    "unsubscribe",
    "google.com/alerts",
    "support.google.com",
    "google.com/settings",
    "accounts.google.com",
)


def _is_ignored(url: str) -> bool:
    lowered = url.lower()
    return any(pattern in lowered for pattern in IGNORED_LINK_PATTERNS)


def extract_links(body: str) -> list[tuple[str, str | None]]:
    """
    Return (raw_link, title) pairs found in a notification body.

    Alert-formatted items win; when none are present every http(s) link in
    the body (markdown, href, or bare) is considered.
    """
    if not body:
        return []

    text = html.unescape(body)

    alert_links = [(url, title.strip()) for title, url in ALERT_LINK_RE.findall(text)]
    if alert_links:
        return alert_links

    links: list[tuple[str, str | None]] = []
    for title, url in MARKDOWN_LINK_RE.findall(text):
        links.append((url, title.strip() or None))
    for url in HREF_RE.findall(text):
        links.append((url, None))
    for url in BARE_URL_RE.findall(text):
        links.append((url.rstrip(".,;:!?"), None))

    return [(url, title) for url, title in links if not _is_ignored(url)]


def parse_notification(
    notification: RawNotification,
    tracking_params: Iterable[str] | None = None,
) -> list[CandidateArticle]:
    """Parse one notification into candidate articles, one per canonical URL."""
    candidates = []
    seen: set[str] = set()

    for raw_link, title in extract_links(notification.raw_body):
        try:
            canonical_url = canonicalize(raw_link, tracking_params)
        except InvalidURL as e:
            logger.debug("Dropping invalid link in %s: %s", notification.id, e)
            continue

        # Unwrapped destinations can still be alert chrome
        if canonical_url in seen or _is_ignored(canonical_url):
            continue
        seen.add(canonical_url)

        candidates.append(
            CandidateArticle(
                notification_id=notification.id,
                raw_link=raw_link,
                canonical_url=canonical_url,
                title=title,
            )
        )

    return candidates


def parse_notifications(
    notifications: list[RawNotification],
    tracking_params: Iterable[str] | None = None,
) -> list[CandidateArticle]:
    """
    Parse a batch of notifications into candidate articles.

    URLs are unique within one notification. The same canonical URL found
    in several notifications yields one candidate per notification, so
    every mention can be traced back to its notification.

    Args:
        notifications: Raw notifications in delivery order
        tracking_params: Extra query parameters to strip while canonicalizing

    Returns:
        List of CandidateArticle in delivery order
    """
    if not notifications:
        return []

    candidates = []
    for notification in notifications:
        candidates.extend(parse_notification(notification, tracking_params))

    logger.info(
        "Parsed %d candidate articles from %d notifications",
        len(candidates),
        len(notifications),
    )
    return candidates


def split_first_mentions(
    candidates: list[CandidateArticle],
) -> tuple[list[CandidateArticle], list[CandidateArticle]]:
    """
    Split candidates into first mentions and repeat mentions.

    The first candidate for a canonical URL owns it; later candidates for
    the same URL (from other notifications) are repeats.

    Returns:
        Tuple of (first_mentions, repeats)
    """
    first, repeats = [], []
    seen: set[str] = set()
    for candidate in candidates:
        if candidate.canonical_url in seen:
            repeats.append(candidate)
        else:
            seen.add(candidate.canonical_url)
            first.append(candidate)
    return first, repeats
