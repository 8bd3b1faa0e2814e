"""Tests for parse_notifications.parse_notifications module."""

from parse_notifications.models import RawNotification
from parse_notifications.parse_notifications import (
    extract_links,
    parse_notification,
    parse_notifications,
    split_first_mentions,
)

ALERT_BODY = """
Google Alert - prompt injection

NEWS [HackedGPT: <b>prompt injection</b> in memory](https://www.google.com/url?rct=j&sa=t&url=https://www.tenable.com/blog/hackedgpt&ct=ga&cd=CAEYAA&usg=AOvVaw1)
Tenable researchers disclosed seven vulnerabilities ...

NEWS [New attack on agents](https://www.google.com/url?rct=j&sa=t&url=https://news.example.com/agents%3Futm_source%3Dfeed&ct=ga)

[Unsubscribe](https://www.google.com/alerts/remove?source=alertsmail&s=abc)
"""


def _notification(body: str, notification_id: str = "n1") -> RawNotification:
    return RawNotification(id=notification_id, received_at=None, raw_body=body)


class TestExtractLinks:
    def test_alert_items_take_priority(self) -> None:
        links = extract_links(ALERT_BODY)
        assert len(links) == 2
        assert links[0][1] == "HackedGPT: <b>prompt injection</b> in memory"
        assert links[0][0].startswith("https://www.google.com/url?")

    def test_falls_back_to_markdown_href_and_bare_links(self) -> None:
        body = (
            "See [the advisory](https://vendor.example.com/advisory). "
            '<a href="https://blog.example.org/post">post</a> '
            "and https://github.com/acme/poc."
        )
        urls = [url for url, _ in extract_links(body)]
        assert "https://vendor.example.com/advisory" in urls
        assert "https://blog.example.org/post" in urls
        assert "https://github.com/acme/poc" in urls

    def test_ignores_alert_chrome_links(self) -> None:
        body = "Manage: https://www.google.com/alerts?hl=en and https://example.com/unsubscribe?id=1"
        assert extract_links(body) == []

    def test_unescapes_html_entities(self) -> None:
        body = '<a href="https://example.com/a?x=1&amp;y=2">a</a>'
        assert extract_links(body)[0][0] == "https://example.com/a?x=1&y=2"

    def test_empty_body(self) -> None:
        assert extract_links("") == []


class TestParseNotification:
    def test_unwraps_and_canonicalizes(self) -> None:
        candidates = parse_notification(_notification(ALERT_BODY))

        assert [c.canonical_url for c in candidates] == [
            "https://www.tenable.com/blog/hackedgpt",
            "https://news.example.com/agents",
        ]
        assert all(c.notification_id == "n1" for c in candidates)

    def test_drops_invalid_links(self) -> None:
        body = "[bad](http://example.com:99999/x) [good](https://example.com/ok)"
        candidates = parse_notification(_notification(body))
        assert [c.canonical_url for c in candidates] == ["https://example.com/ok"]

    def test_dedupes_within_notification(self) -> None:
        body = "https://example.com/a https://example.com/a/ https://EXAMPLE.com/a#top"
        candidates = parse_notification(_notification(body))
        assert len(candidates) == 1


class TestParseNotifications:
    def test_keeps_one_candidate_per_notification(self) -> None:
        wrapped = _notification(
            "https://news.example.com/go?utm_source=alert&url=https%3A%2F%2Fblog.vendor.com%2Fpost",
            "n1",
        )
        plain = _notification("Read https://blog.vendor.com/post", "n2")

        candidates = parse_notifications([wrapped, plain])

        assert [c.canonical_url for c in candidates] == ["https://blog.vendor.com/post"] * 2
        assert [c.notification_id for c in candidates] == ["n1", "n2"]

    def test_first_mention_owns_url(self) -> None:
        wrapped = _notification(
            "https://news.example.com/go?utm_source=alert&url=https%3A%2F%2Fblog.vendor.com%2Fpost",
            "n1",
        )
        plain = _notification("Read https://blog.vendor.com/post and https://other.example.com/x", "n2")

        first, repeats = split_first_mentions(parse_notifications([wrapped, plain]))

        assert [(c.canonical_url, c.notification_id) for c in first] == [
            ("https://blog.vendor.com/post", "n1"),
            ("https://other.example.com/x", "n2"),
        ]
        assert [(c.canonical_url, c.notification_id) for c in repeats] == [
            ("https://blog.vendor.com/post", "n2"),
        ]

    def test_empty_input_returns_empty(self) -> None:
        assert parse_notifications([]) == []
