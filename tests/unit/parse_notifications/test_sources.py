"""Tests for parse_notifications.sources module."""

import json
from datetime import datetime, timezone

import pytest

from parse_notifications.models import RawNotification
from parse_notifications.sources import (
    JsonlNotificationSource,
    StaticNotificationSource,
    to_notification,
)


class TestToNotification:
    def test_camel_case_record(self) -> None:
        n = to_notification({"id": "m1", "receivedAt": "2025-11-03T10:00:00Z", "rawBody": "body"})
        assert n.id == "m1"
        assert n.received_at == datetime(2025, 11, 3, 10, 0, tzinfo=timezone.utc)
        assert n.raw_body == "body"

    def test_snake_case_record(self) -> None:
        n = to_notification({"id": 5, "received_at": None, "raw_body": "b"})
        assert n.id == "5"
        assert n.received_at is None

    def test_missing_id_raises(self) -> None:
        with pytest.raises(ValueError):
            to_notification({"rawBody": "x"})


class TestStaticNotificationSource:
    def test_filters_seen(self) -> None:
        source = StaticNotificationSource([
            RawNotification(id="a", received_at=None, raw_body=""),
            RawNotification(id="b", received_at=None, raw_body=""),
        ])
        assert [n.id for n in source.fetch_notifications({"a"})] == ["b"]


class TestJsonlNotificationSource:
    def test_reads_unseen_and_skips_bad_records(self, tmp_path) -> None:
        path = tmp_path / "notifications.jsonl"
        lines = [
            json.dumps({"id": "a", "receivedAt": "2025-11-03T10:00:00+00:00", "rawBody": "x"}),
            "",
            json.dumps({"rawBody": "no id"}),
            json.dumps({"id": "b", "receivedAt": "not a date", "rawBody": "y"}),
            json.dumps({"id": "c", "rawBody": "z"}),
        ]
        path.write_text("\n".join(lines) + "\n")

        notifications = JsonlNotificationSource(path).fetch_notifications({"c"})

        assert [n.id for n in notifications] == ["a"]

    def test_missing_file_returns_empty(self, tmp_path) -> None:
        assert JsonlNotificationSource(tmp_path / "missing.jsonl").fetch_notifications(set()) == []
