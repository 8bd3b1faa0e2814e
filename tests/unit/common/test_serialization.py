"""Tests for common.serialization module."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

import pytest

from common.serialization import parse_datetime, serialize_dataclass


class Color(str, Enum):
    RED = "red"


@dataclass
class SampleData:
    name: str
    value: int


@dataclass
class SampleNested:
    created_at: datetime
    color: Color
    history: list = field(default_factory=list)
    metadata: dict = field(default_factory=dict)


class TestSerializeDataclass:
    def test_basic_dataclass_to_dict(self) -> None:
        assert serialize_dataclass(SampleData(name="test", value=42)) == {"name": "test", "value": 42}

    def test_converts_datetimes_and_enums_recursively(self) -> None:
        dt = datetime(2024, 6, 15, 8, 30, tzinfo=timezone.utc)
        obj = SampleNested(created_at=dt, color=Color.RED, history=[dt], metadata={"at": dt})

        result = serialize_dataclass(obj)

        assert result == {
            "created_at": "2024-06-15T08:30:00+00:00",
            "color": "red",
            "history": ["2024-06-15T08:30:00+00:00"],
            "metadata": {"at": "2024-06-15T08:30:00+00:00"},
        }

    def test_rejects_non_dataclass(self) -> None:
        with pytest.raises(TypeError):
            serialize_dataclass({"name": "test"})


class TestParseDatetime:
    def test_none_and_empty(self) -> None:
        assert parse_datetime(None) is None
        assert parse_datetime("") is None

    def test_datetime_passthrough(self) -> None:
        dt = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        assert parse_datetime(dt) is dt

    def test_iso_string_with_z_suffix(self) -> None:
        assert parse_datetime("2024-01-01T12:00:00Z") == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)

    def test_naive_string_is_utc(self) -> None:
        assert parse_datetime("2025-01-05T10:00:00") == datetime(2025, 1, 5, 10, tzinfo=timezone.utc)

    def test_naive_datetime_is_utc(self) -> None:
        result = parse_datetime(datetime(2025, 1, 5, 10))
        assert result.tzinfo is timezone.utc
