"""Data models and errors for the fetch_content pipeline stage."""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class FetchedContent:
    """Body text extracted from a fetched page."""
    url: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class FetchOutcome:
    """Result of fetching one URL with retries: content or an error note, never both."""
    url: str
    content: Optional[FetchedContent] = None
    error: Optional[str] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.content is not None


class FetchError(Exception):
    """Base class for content fetch failures."""

    transient = False


class FetchTimeout(FetchError):
    transient = True

    def __init__(self, url: str) -> None:
        super().__init__(f"Timed out fetching {url}")
        self.url = url


class FetchHTTPError(FetchError):
    def __init__(self, url: str, status: int) -> None:
        super().__init__(f"HTTP {status} fetching {url}")
        self.url = url
        self.status = status

    @property
    def transient(self) -> bool:
        # 5xx and throttling are worth retrying, other 4xx are final
        return self.status >= 500 or self.status == 429


class FetchNetworkError(FetchError):
    transient = True

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Network error fetching {url}: {reason}")
        self.url = url
        self.reason = reason
