"""Tests for common.hashing module."""

from common.hashing import generate_item_id


class TestGenerateItemId:
    def test_deterministic_output(self) -> None:
        assert generate_item_id("https://a.com/1") == generate_item_id("https://a.com/1")

    def test_returns_16_char_hex_string(self) -> None:
        result = generate_item_id("https://a.com/1")
        assert len(result) == 16
        assert all(c in "0123456789abcdef" for c in result)

    def test_different_url_produces_different_id(self) -> None:
        assert generate_item_id("https://a.com/1") != generate_item_id("https://a.com/2")
