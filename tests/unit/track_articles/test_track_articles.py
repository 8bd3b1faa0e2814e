"""Tests for track_articles.track_articles module."""

from datetime import datetime, timezone

import pytest

from common.utils import DuplicateKeyError
from track_articles.models import Classification, ProcessedArticle
from track_articles.track_articles import ArticleTracker

NOW = datetime(2025, 11, 3, 12, 0, tzinfo=timezone.utc)


def _article(url: str, classification=Classification.NO_SOURCES, sources=None, notification="n1"):
    return ProcessedArticle(
        article_url=url,
        source_notification_id=notification,
        processed_at=NOW,
        classification=classification,
        discovered_source_urls=sources or [],
    )


class TestArticleTracker:
    def test_record_and_is_known(self) -> None:
        tracker = ArticleTracker()
        assert not tracker.is_known("https://a.com/1")

        tracker.record(_article("https://a.com/1"))

        assert tracker.is_known("https://a.com/1")
        assert "https://a.com/1" in tracker
        assert len(tracker) == 1

    def test_duplicate_record_raises(self) -> None:
        tracker = ArticleTracker([_article("https://a.com/1")])
        with pytest.raises(DuplicateKeyError):
            tracker.record(_article("https://a.com/1", notification="n2"))
        assert tracker.get("https://a.com/1").source_notification_id == "n1"

    def test_duplicate_in_initial_load_raises(self) -> None:
        with pytest.raises(DuplicateKeyError):
            ArticleTracker([_article("https://a.com/1"), _article("https://a.com/1")])

    def test_forget_errors(self) -> None:
        tracker = ArticleTracker([
            _article("https://a.com/ok"),
            _article("https://a.com/bad", classification=Classification.ERROR, notification="n9"),
        ])

        removed = tracker.forget_errors()

        assert [a.article_url for a in removed] == ["https://a.com/bad"]
        assert not tracker.is_known("https://a.com/bad")
        assert tracker.is_known("https://a.com/ok")


class TestProcessedArticleSerialization:
    def test_to_dict_uses_wire_values(self) -> None:
        data = _article("https://a.com/1", Classification.IS_ORIGINAL_REPORT, ["https://a.com/1"]).to_dict()
        assert data["classification"] == "is-original-report"
        assert data["processed_at"] == "2025-11-03T12:00:00+00:00"

    def test_from_dict_restores_fields(self) -> None:
        original = _article("https://a.com/1", Classification.HAS_SOURCES, ["https://s.com/x"])
        restored = ProcessedArticle.from_dict(original.to_dict())
        assert restored == original
