"""Data models for the resolve_links pipeline stage."""

from dataclasses import dataclass, field
from typing import Optional

from track_articles.models import Classification


@dataclass
class ArticleForResolution:
    """A fetched, not-yet-processed article sent to the classifier."""
    article_id: str
    article_url: str
    content: str


@dataclass
class LinkResolution:
    """Classifier verdict for one article. Links are canonical source URLs."""
    article_id: str
    article_url: str
    classification: Classification
    security_report_links: list[str] = field(default_factory=list)
    notes: Optional[str] = None
