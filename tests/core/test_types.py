"""Tests for the Record model and id generation."""

from __future__ import annotations

import re
from datetime import UTC, datetime

import pytest

from recordsync.core.errors import ValidationError
from recordsync.core.types import (
    DEFAULT_RECORDS,
    Record,
    RecordSource,
    default_records,
    generate_local_id,
)


class TestGenerateLocalId:
    """Tests for generate_local_id."""

    def test_format(self) -> None:
        """Ids look like local_<epoch-ms>_<9 chars>."""
        assert re.fullmatch(r"local_\d{13}_[a-z0-9]{9}", generate_local_id())

    def test_ids_are_unique(self) -> None:
        """Consecutive ids should differ."""
        ids = {generate_local_id() for _ in range(100)}
        assert len(ids) == 100


class TestRecordFromDict:
    """Tests for Record.from_dict."""

    def test_valid_record(self) -> None:
        """A complete entry is parsed as-is."""
        record = Record.from_dict(
            {"id": "r1", "text": "Hello", "category": "Greeting", "source": "server"}
        )
        assert record.id == "r1"
        assert record.text == "Hello"
        assert record.category == "Greeting"
        assert record.source == RecordSource.SERVER
        assert record.last_modified is None

    def test_strips_whitespace(self) -> None:
        """Text and category are trimmed."""
        record = Record.from_dict({"id": "r1", "text": "  Hi  ", "category": " A "})
        assert record.text == "Hi"
        assert record.category == "A"

    def test_numeric_id_becomes_string(self) -> None:
        """Remote-style numeric ids are kept as strings."""
        record = Record.from_dict({"id": 42, "text": "x", "category": "y"})
        assert record.id == "42"

    @pytest.mark.parametrize(
        "data",
        [
            {"id": "r1", "text": "", "category": "A"},
            {"id": "r1", "text": "   ", "category": "A"},
            {"id": "r1", "text": "x"},
            {"id": "r1", "text": 3, "category": "A"},
            {"id": True, "text": "x", "category": "A"},
            {"id": "r1", "text": "x", "category": "A", "source": "elsewhere"},
            "not a record",
            None,
        ],
    )
    def test_rejects_malformed(self, data: object) -> None:
        """Malformed entries raise ValidationError."""
        with pytest.raises(ValidationError):
            Record.from_dict(data)

    def test_missing_id_without_factory(self) -> None:
        """An entry without id is rejected when no factory is given."""
        with pytest.raises(ValidationError, match="missing an id"):
            Record.from_dict({"text": "x", "category": "y"})

    def test_missing_id_uses_factory(self) -> None:
        """Legacy entries without id get one from the factory."""
        record = Record.from_dict({"text": "x", "category": "y"}, id_factory=lambda: "new")
        assert record.id == "new"

    def test_parses_iso_timestamp(self) -> None:
        """lastModified accepts ISO-8601 strings."""
        record = Record.from_dict(
            {"id": "r1", "text": "x", "category": "y", "lastModified": "2024-01-02T03:04:05+00:00"}
        )
        assert record.last_modified == datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)

    def test_parses_epoch_millis(self) -> None:
        """lastModified accepts epoch milliseconds."""
        record = Record.from_dict(
            {"id": "r1", "text": "x", "category": "y", "lastModified": 1_700_000_000_000}
        )
        assert record.last_modified == datetime.fromtimestamp(1_700_000_000, tz=UTC)

    def test_rejects_bad_timestamp(self) -> None:
        """Unparseable timestamps are rejected."""
        with pytest.raises(ValidationError):
            Record.from_dict({"id": "r1", "text": "x", "category": "y", "lastModified": "soon"})

    @pytest.mark.parametrize("value", [1e20, -1e20, float("nan"), float("inf")])
    def test_rejects_out_of_range_epoch(self, value: float) -> None:
        """Epoch values datetime cannot represent are rejected."""
        with pytest.raises(ValidationError):
            Record.from_dict({"id": "r1", "text": "x", "category": "y", "lastModified": value})


class TestRecordSerialization:
    """Tests for Record.to_dict."""

    def test_minimal_record(self) -> None:
        """Optional fields are omitted when unset."""
        record = Record(id="r1", text="x", category="y")
        assert record.to_dict() == {"id": "r1", "text": "x", "category": "y"}

    def test_full_record(self) -> None:
        """Source and lastModified are written in the persisted shape."""
        ts = datetime(2024, 5, 1, tzinfo=UTC)
        record = Record(
            id="r1", text="x", category="y", source=RecordSource.MERGED, last_modified=ts
        )
        data = record.to_dict()
        assert data["source"] == "merged"
        assert data["lastModified"] == ts.isoformat()
        assert Record.from_dict(data) == record


class TestRecordMatching:
    """Tests for Record.matches."""

    def test_matches_by_id(self) -> None:
        """Same id is the same logical record, even with different text."""
        assert Record("1", "a", "c").matches(Record("1", "b", "c"))

    def test_matches_by_text(self) -> None:
        """Same text is the same logical record, even with different ids."""
        assert Record("1", "same", "c").matches(Record("2", "same", "d"))

    def test_no_match(self) -> None:
        """Different id and text do not match."""
        assert not Record("1", "a", "c").matches(Record("2", "b", "c"))


class TestRecordValidate:
    """Tests for Record.validate."""

    def test_valid(self) -> None:
        """A well-formed record validates and returns itself."""
        record = Record("1", "a", "c")
        assert record.validate() is record

    @pytest.mark.parametrize(
        "record",
        [Record("", "a", "c"), Record("1", "", "c"), Record("1", "a", "  ")],
    )
    def test_invalid(self, record: Record) -> None:
        """Empty fields are rejected."""
        with pytest.raises(ValidationError):
            record.validate()


class TestDefaultRecords:
    """Tests for the default record set."""

    def test_default_set(self) -> None:
        """Defaults carry the built-in texts with fresh local ids."""
        records = default_records()
        assert [r.text for r in records] == [text for text, _ in DEFAULT_RECORDS]
        assert all(r.source == RecordSource.LOCAL for r in records)
        assert len({r.id for r in records}) == len(records)
