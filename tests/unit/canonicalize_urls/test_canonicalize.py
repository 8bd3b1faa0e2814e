"""Tests for canonicalize_urls.canonicalize module."""

from urllib.parse import quote

import pytest

from canonicalize_urls.canonicalize import (
    MAX_UNWRAP_DEPTH,
    InvalidURL,
    canonicalize,
    try_canonicalize,
    unwrap_redirect,
)


def _wrap(url: str, depth: int) -> str:
    for _ in range(depth):
        url = f"https://r.example.com/out?url={quote(url, safe='')}"
    return url


class TestCanonicalize:
    def test_lowercases_scheme_and_host_only(self) -> None:
        assert canonicalize("HTTPS://Blog.Vendor.COM/Post/ABC") == "https://blog.vendor.com/Post/ABC"

    def test_strips_utm_prefix_params(self) -> None:
        result = canonicalize("https://example.com/a?utm_source=x&utm_custom=y&id=7")
        assert result == "https://example.com/a?id=7"

    def test_strips_known_analytics_keys_case_insensitively(self) -> None:
        result = canonicalize("https://example.com/a?FBCLID=1&gclid=2&mc_eid=3&page=2")
        assert result == "https://example.com/a?page=2"

    def test_keeps_non_tracking_param_order(self) -> None:
        assert canonicalize("https://example.com/a?b=2&a=1") == "https://example.com/a?b=2&a=1"

    def test_extra_tracking_params(self) -> None:
        result = canonicalize("https://example.com/a?sessionid=9&x=1", tracking_params=["SessionId"])
        assert result == "https://example.com/a?x=1"

    def test_drops_fragment(self) -> None:
        assert canonicalize("https://example.com/a#section-2") == "https://example.com/a"

    def test_strips_trailing_slash(self) -> None:
        assert canonicalize("https://example.com/a/") == "https://example.com/a"

    def test_root_path(self) -> None:
        assert canonicalize("https://example.com/") == "https://example.com"

    def test_keeps_port_and_userinfo(self) -> None:
        assert canonicalize("http://User@Example.com:8080/x") == "http://User@example.com:8080/x"

    def test_drops_empty_query(self) -> None:
        assert canonicalize("https://example.com/a?utm_medium=email") == "https://example.com/a"

    def test_unwraps_google_alert_redirect(self) -> None:
        raw = (
            "https://www.google.com/url?rct=j&sa=t"
            "&url=https://www.tenable.com/blog/hackedgpt%3Futm_source%3Dalert"
            "&ct=ga&cd=CAEYACoT&usg=AOvVaw"
        )
        assert canonicalize(raw) == "https://www.tenable.com/blog/hackedgpt"

    def test_wrapper_and_plain_link_are_same_resource(self) -> None:
        wrapped = "https://news.example.com/go?utm_source=alert&url=https%3A%2F%2Fblog.vendor.com%2Fpost"
        plain = "https://blog.vendor.com/post"
        assert canonicalize(wrapped) == canonicalize(plain) == "https://blog.vendor.com/post"

    def test_nested_wrappers(self) -> None:
        inner = "https%3A%2F%2Ft.example.net%2Fr%3Fu%3Dhttps%253A%252F%252Fexample.org%252Fx"
        assert canonicalize(f"https://a.example.com/out?url={inner}") == "https://example.org/x"

    def test_unwraps_up_to_max_depth(self) -> None:
        assert canonicalize(_wrap("https://example.org/x", MAX_UNWRAP_DEPTH)) == "https://example.org/x"

    def test_too_many_nested_wrappers_raise(self) -> None:
        with pytest.raises(InvalidURL):
            canonicalize(_wrap("https://example.org/x", MAX_UNWRAP_DEPTH + 1))

    def test_redirect_param_without_url_is_kept(self) -> None:
        assert canonicalize("https://example.com/search?q=prompt+injection") == (
            "https://example.com/search?q=prompt+injection"
        )

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "   ",
            "not a url",
            "ftp://example.com/file",
            "mailto:someone@example.com",
            "https://",
            "/relative/path",
            "http://example.com:notaport/",
        ],
    )
    def test_invalid_urls_raise(self, raw: str) -> None:
        with pytest.raises(InvalidURL):
            canonicalize(raw)

    def test_non_string_raises(self) -> None:
        with pytest.raises(InvalidURL):
            canonicalize(None)  # type: ignore[arg-type]


class TestCanonicalizeIdempotence:
    @pytest.mark.parametrize(
        "raw",
        [
            "HTTPS://Example.COM/a/b/?utm_source=x&id=1#frag",
            "https://example.com//",
            "https://example.com/a?x=1&x=2&fbclid=abc",
            "https://www.google.com/url?url=https%3A%2F%2FExample.com%2Fpost%2F%3Fref%3Dtw",
            "http://[2001:db8::1]:8080/path/",
            "https://example.com/a%20b?q=a+b",
        ],
    )
    def test_idempotent(self, raw: str) -> None:
        once = canonicalize(raw)
        assert canonicalize(once) == once

    def test_deterministic(self) -> None:
        raw = "https://Example.com/a/?utm_campaign=z&b=2"
        assert canonicalize(raw) == canonicalize(raw)


class TestUnwrapRedirect:
    def test_returns_destination(self) -> None:
        assert unwrap_redirect("https://x.com/r?target=https%3A%2F%2Fy.com%2Fz") == "https://y.com/z"

    def test_returns_none_without_query(self) -> None:
        assert unwrap_redirect("https://x.com/r") is None

    def test_ignores_non_http_destination(self) -> None:
        assert unwrap_redirect("https://x.com/r?url=javascript%3Aalert(1)") is None


class TestTryCanonicalize:
    def test_returns_none_for_invalid(self) -> None:
        assert try_canonicalize("nope") is None

    def test_returns_canonical(self) -> None:
        assert try_canonicalize("https://EXAMPLE.com/") == "https://example.com"
