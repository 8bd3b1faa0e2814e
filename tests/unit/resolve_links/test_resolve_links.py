"""Tests for resolve_links.resolve_links module."""

from unittest.mock import MagicMock

import pytest

from common.llm import EngineUnavailable, ModelOutputError
from resolve_links.instructions import LINK_RESOLUTION_INSTRUCTIONS
from resolve_links.models import ArticleForResolution
from resolve_links.resolve_links import resolve_links
from track_articles.models import Classification


def _items():
    return [
        ArticleForResolution("a1", "https://news.com/story", "Researchers at https://lab.com/post found..."),
        ArticleForResolution("a2", "https://lab.com/writeup", "We discovered a new injection..."),
        ArticleForResolution("a3", "https://news.com/opinion", "Thoughts on AI safety."),
    ]


def _model(*responses) -> MagicMock:
    model = MagicMock()
    model.complete.side_effect = list(responses)
    return model


GOOD_RESPONSE = {
    "articles": [
        {
            "id": "a1",
            "classification": "has-sources",
            "securityReportLinks": ["https://lab.com/post/?utm_source=x", "https://lab.com/post", "not a url"],
        },
        {"id": "a2", "classification": "is-original-report", "securityReportLinks": []},
        {"id": "a3", "classification": "no-sources", "securityReportLinks": ["https://ignored.com"]},
    ]
}


class TestResolveLinks:
    def test_classifies_batch_in_one_call(self) -> None:
        model = _model(GOOD_RESPONSE)

        results = resolve_links(_items(), model)

        assert model.complete.call_count == 1
        instructions, payload = model.complete.call_args.args
        assert instructions == LINK_RESOLUTION_INSTRUCTIONS
        assert [item["id"] for item in payload["items"]] == ["a1", "a2", "a3"]

        assert [r.classification for r in results] == [
            Classification.HAS_SOURCES,
            Classification.IS_ORIGINAL_REPORT,
            Classification.NO_SOURCES,
        ]
        assert results[0].security_report_links == ["https://lab.com/post"]
        assert results[1].security_report_links == ["https://lab.com/writeup"]
        assert results[2].security_report_links == []

    def test_truncates_content(self) -> None:
        model = _model({"articles": [{"id": "a1", "classification": "no-sources"}]})

        resolve_links([ArticleForResolution("a1", "https://n.com/1", "x" * 100)], model, char_limit=10)

        payload = model.complete.call_args.args[1]
        assert payload["items"][0]["content"] == "x" * 10

    def test_accepts_alias_labels(self) -> None:
        model = _model({
            "articles": [
                {"id": "a1", "classification": "has-security-links", "securityReportLinks": ["https://lab.com/post"]},
                {"id": "a2", "classification": "no-security-links"},
            ]
        })

        results = resolve_links(_items()[:2], model)

        assert results[0].classification is Classification.HAS_SOURCES
        assert results[1].classification is Classification.NO_SOURCES

    def test_malformed_response_retries_then_succeeds(self) -> None:
        model = _model({"wrong": []}, GOOD_RESPONSE)

        results = resolve_links(_items(), model, retries=1)

        assert model.complete.call_count == 2
        assert all(r.classification is not Classification.ERROR for r in results)

    def test_persistent_schema_violation_marks_all_items_error(self) -> None:
        bad = {"articles": [{"id": "a1", "classification": "maybe"}]}
        model = _model(bad, bad)

        results = resolve_links(_items(), model, retries=1)

        assert model.complete.call_count == 2
        assert all(r.classification is Classification.ERROR for r in results)
        assert all(r.notes.startswith("Classification failed") for r in results)

    def test_model_may_not_return_error_label(self) -> None:
        model = _model({"articles": [{"id": "a1", "classification": "error"}]})

        results = resolve_links(_items()[:1], model, retries=0)

        assert results[0].classification is Classification.ERROR

    def test_invalid_json_is_retried(self) -> None:
        model = _model(ModelOutputError("not json"), GOOD_RESPONSE)

        results = resolve_links(_items(), model, retries=1)

        assert results[0].classification is Classification.HAS_SOURCES

    def test_missing_item_is_error_for_that_item_only(self) -> None:
        model = _model({"articles": GOOD_RESPONSE["articles"][:2]})

        results = resolve_links(_items(), model)

        assert results[0].classification is Classification.HAS_SOURCES
        assert results[2].classification is Classification.ERROR
        assert results[2].notes == "No classification returned for this article"

    def test_engine_unavailable_propagates(self) -> None:
        model = _model(EngineUnavailable("down"))

        with pytest.raises(EngineUnavailable):
            resolve_links(_items(), model)

    def test_empty_batch_skips_model(self) -> None:
        model = MagicMock()
        assert resolve_links([], model) == []
        model.complete.assert_not_called()
