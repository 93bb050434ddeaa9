"""Tests for record and identifier types."""

from datetime import datetime, timezone

import pytest

from dashboard_sync.sync.records import (
    LinkedId,
    LocalCollection,
    LocalId,
    LocalRecord,
    RemoteCollection,
    RemoteRecord,
    is_linked,
    link_id,
    new_local_id,
    parse_record_id,
    parse_timestamp,
    utc_now_iso,
)


class TestRecordIds:
    """Tests for tagged record identifiers."""

    def test_linked_id(self):
        """Test parsing an id carrying the provider prefix."""
        record_id = parse_record_id("google-abc123")
        assert record_id == LinkedId(provider="google", remote_id="abc123")

    def test_local_id(self):
        """Test that unprefixed ids are local."""
        assert parse_record_id("local-1") == LocalId("local-1")

    def test_bare_prefix_is_local(self):
        """Test that the prefix alone is not a linked id."""
        assert parse_record_id("google-") == LocalId("google-")

    def test_unknown_provider_is_local(self):
        """Test that only the given provider tags are recognised."""
        assert isinstance(parse_record_id("outlook-1", ("google",)), LocalId)

    def test_remote_id_with_dashes(self):
        """Test that the remote id keeps everything after the prefix."""
        record_id = parse_record_id("google-a-b-c")
        assert record_id.remote_id == "a-b-c"

    def test_link_id_round_trips(self):
        """Test that link_id builds the persisted form."""
        raw = link_id("google", "xyz")
        assert raw == "google-xyz"
        assert str(parse_record_id(raw)) == raw

    def test_is_linked(self):
        """Test the is_linked helper."""
        assert is_linked("google-1", "google")
        assert not is_linked("abc", "google")

    def test_new_local_ids_are_unique_and_local(self):
        """Test that fresh ids are distinct local ids."""
        first, second = new_local_id(), new_local_id()
        assert first != second
        assert isinstance(parse_record_id(first), LocalId)


class TestTimestamps:
    """Tests for timestamp helpers."""

    def test_utc_now_iso_format(self):
        """Test that the current time ends with Z and parses back."""
        value = utc_now_iso()
        assert value.endswith("Z")
        assert parse_timestamp(value).tzinfo is not None

    def test_parse_epoch_milliseconds(self):
        """Test parsing epoch milliseconds."""
        parsed = parse_timestamp(0)
        assert parsed == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_parse_naive_is_utc(self):
        """Test that naive timestamps are treated as UTC."""
        parsed = parse_timestamp("2026-03-01T10:00:00")
        assert parsed.tzinfo == timezone.utc

    @pytest.mark.parametrize("value", [None, "", "not a date"])
    def test_unparseable(self, value):
        """Test that empty or invalid values give None."""
        assert parse_timestamp(value) is None


class TestLocalRecord:
    """Tests for LocalRecord."""

    def test_from_dict(self):
        """Test loading a stored record."""
        record = LocalRecord.from_dict(
            {
                "id": "local-1",
                "title": "Buy milk",
                "completed": True,
                "priority": True,
                "deadline": "2026-05-01",
                "createdAt": 0,
                "syncedAt": "2026-05-01T00:00:00.000Z",
            }
        )

        assert record.id == "local-1"
        assert record.completed is True
        assert record.priority is True
        assert record.created_at.startswith("1970-01-01")
        assert record.synced_at == "2026-05-01T00:00:00.000Z"

    def test_from_dict_requires_id(self):
        """Test that a record without id is rejected."""
        with pytest.raises(ValueError):
            LocalRecord.from_dict({"title": "No id"})

    def test_to_dict_omits_unset_fields(self):
        """Test that empty optional fields are not stored."""
        data = LocalRecord(id="a", title="T", end_date="2026-01-02").to_dict()
        assert data["endDate"] == "2026-01-02"
        assert "deadline" not in data
        assert "syncedAt" not in data

    def test_never_synced_is_modified(self):
        """Test that a record never synced needs pushing."""
        assert LocalRecord(id="a", title="T").is_modified_since_sync()

    def test_modified_after_sync(self):
        """Test comparison of updated and synced timestamps."""
        record = LocalRecord(
            id="google-1",
            title="T",
            updated_at="2026-01-02T00:00:00.000Z",
            synced_at="2026-01-01T00:00:00.000Z",
        )
        assert record.is_modified_since_sync()

        record.synced_at = "2026-01-03T00:00:00.000Z"
        assert not record.is_modified_since_sync()

    def test_record_id(self):
        """Test the tagged id accessor."""
        assert LocalRecord(id="google-9", title="T").record_id() == LinkedId(
            "google", "9"
        )


class TestCollectionsAndRemote:
    """Tests for collection and remote types."""

    def test_local_collection_round_trip(self):
        """Test stored collection form."""
        collection = LocalCollection.from_dict({"id": "1", "name": "Inbox"})
        assert collection.to_dict()["name"] == "Inbox"
        assert collection.created_at

    def test_remote_record_uses_summary_as_title(self):
        """Test that calendar summaries are used as titles."""
        remote = RemoteRecord.from_api({"id": "e1", "summary": "Meeting"})
        assert remote.title == "Meeting"
        assert remote.fields["summary"] == "Meeting"

    def test_remote_collection_primary(self):
        """Test primary flag of a calendar."""
        remote = RemoteCollection.from_api(
            {"id": "me@example.com", "summary": "Me", "primary": True}
        )
        assert remote.primary is True
        assert remote.title == "Me"
