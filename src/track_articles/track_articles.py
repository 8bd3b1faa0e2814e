"""Insert-only index of articles that have already been analyzed."""

from __future__ import annotations

from typing import Iterable, Iterator

from common.utils import DuplicateKeyError
from track_articles.models import Classification, ProcessedArticle


class ArticleTracker:
    """
    Dedup index keyed by canonical article URL.

    Callers filter with is_known() before recording; recording a known URL
    is a programming error and raises DuplicateKeyError.
    """

    def __init__(self, articles: Iterable[ProcessedArticle] = ()) -> None:
        self._articles: dict[str, ProcessedArticle] = {}
        for article in articles:
            self.record(article)

    def __len__(self) -> int:
        return len(self._articles)

    def __iter__(self) -> Iterator[ProcessedArticle]:
        return iter(self._articles.values())

    def __contains__(self, article_url: object) -> bool:
        return article_url in self._articles

    def is_known(self, article_url: str) -> bool:
        return article_url in self._articles

    def get(self, article_url: str) -> ProcessedArticle | None:
        return self._articles.get(article_url)

    def record(self, article: ProcessedArticle) -> None:
        if article.article_url in self._articles:
            raise DuplicateKeyError(f"Article already recorded: {article.article_url}")
        self._articles[article.article_url] = article

    def forget_errors(self) -> list[ProcessedArticle]:
        """Drop error-classified articles so they can be analyzed again."""
        removed = [a for a in self._articles.values() if a.classification is Classification.ERROR]
        for article in removed:
            del self._articles[article.article_url]
        return removed
