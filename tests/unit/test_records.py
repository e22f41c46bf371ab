"""Unit tests for lead_etl.records (row mapping + Record Validator)."""

from __future__ import annotations

import csv

import pytest

from lead_etl.records import (
    DEFAULT_STATUS,
    CandidateRecord,
    ImportMode,
    record_from_row,
    validate_records,
)
from lead_etl.shared import NoValidRecordsError, RejectWriter


# ---------------------------------------------------------------------------
# ImportMode
# ---------------------------------------------------------------------------

class TestImportMode:
    def test_accepts_plain_strings(self):
        assert ImportMode("merge") is ImportMode.MERGE

    def test_rejects_unknown_mode(self):
        with pytest.raises(ValueError):
            ImportMode("overwrite")

    def test_default_status_constant(self):
        assert DEFAULT_STATUS == "new"


# ---------------------------------------------------------------------------
# record_from_row
# ---------------------------------------------------------------------------

class TestRecordFromRow:
    def test_maps_known_columns(self):
        rec = record_from_row({
            "username": " Alice ",
            "full_name": "Alice   Smith",
            "followers_count": "1,200",
            "following_count": "80",
            "posts_count": "n/a",
            "bio": " sailor ",
            "profile_url": "instagram.com/alice",
        }, position=3)
        assert rec.username == "Alice"
        assert rec.natural_key == "alice"
        assert rec.full_name == "Alice Smith"
        assert rec.followers_count == 1200
        assert rec.following_count == 80
        assert rec.posts_count is None
        assert rec.bio == "sailor"
        assert rec.profile_url == "https://instagram.com/alice"
        assert rec.source_row == 3

    def test_header_aliases_from_column_based_import(self):
        rec = record_from_row({"Usernames": "bob", "Followers": "10", "Full Names": "Bob"})
        assert rec.natural_key == "bob"
        assert rec.followers_count == 10
        assert rec.full_name == "Bob"

    def test_unknown_columns_go_to_extra(self):
        rec = record_from_row({"username": "bob", "Niche": "fitness", "Notes": "  "})
        assert rec.extra == {"Niche": "fitness"}

    def test_status_lowercased_and_optional(self):
        assert record_from_row({"username": "a", "status": "Contacted"}).status == "contacted"
        assert record_from_row({"username": "a"}).status is None

    def test_custom_column_map(self):
        column_map = {"username": ["Handle"], "bio": ["About"]}
        rec = record_from_row({"Handle": "@carol", "About": "hi", "username": "ignored"}, column_map=column_map)
        assert rec.natural_key == "carol"
        assert rec.bio == "hi"
        assert rec.extra == {"username": "ignored"}

    def test_blank_username_kept_for_validator(self):
        rec = record_from_row({"username": "   ", "full_name": "Nobody"})
        assert rec.username is None
        assert rec.natural_key is None


# ---------------------------------------------------------------------------
# validate_records
# ---------------------------------------------------------------------------

class TestValidateRecords:
    def test_drops_blank_keys_and_preserves_order(self):
        records = [
            CandidateRecord(username="zed"),
            CandidateRecord(username="  "),
            CandidateRecord(username=None),
            CandidateRecord(username="amy"),
        ]
        valid, dropped = validate_records(records)
        assert [r.natural_key for r in valid] == ["zed", "amy"]
        assert dropped == 2

    def test_empty_input_raises(self):
        with pytest.raises(NoValidRecordsError):
            validate_records([])

    def test_all_blank_raises(self):
        with pytest.raises(NoValidRecordsError, match="2 row"):
            validate_records([CandidateRecord(username=""), CandidateRecord(username="@")])

    def test_rejects_written_with_reason(self, tmp_path):
        path = tmp_path / "rejects.csv"
        rejects = RejectWriter(path)
        validate_records(
            [CandidateRecord(username="ok"), CandidateRecord(username=None, full_name="Ghost")],
            rejects,
        )
        rejects.close()
        with path.open(encoding="utf-8") as fh:
            rows = list(csv.DictReader(fh))
        assert len(rows) == 1
        assert rows[0]["full_name"] == "Ghost"
        assert rows[0]["_reject_reason"] == "missing_username"
        assert rejects.count == 1

    def test_accepts_generator(self):
        valid, dropped = validate_records(CandidateRecord(username=u) for u in ["a", "b"])
        assert len(valid) == 2
        assert dropped == 0
