"""Tests for the reconciliation engine."""

from unittest.mock import MagicMock, patch

import pytest
from googleapiclient.errors import HttpError

from conftest import FakeClient
from dashboard_sync.errors import SyncError, SyncErrorKind
from dashboard_sync.sync.engine import merge_records
from dashboard_sync.sync.records import LocalRecord, RemoteCollection


def make_http_error(status, reason="error"):
    resp = MagicMock()
    resp.status = status
    resp.reason = reason
    return HttpError(resp, b"")


def my_tasks_client(records=None, ids=None):
    return FakeClient(
        collections=[RemoteCollection(id="L1", title="My Tasks")],
        records={"L1": records or []},
        ids=ids,
    )


class TestMergeRecords:
    """Tests for merge_records."""

    def test_pulled_record_replaces_local(self):
        """Test that the remote version wins for an existing id."""
        existing = [LocalRecord(id="google-1", title="Old")]
        pulled = [LocalRecord(id="google-1", title="New")]

        merged = merge_records(existing, pulled)

        assert [r.title for r in merged] == ["New"]

    def test_new_records_are_appended(self):
        """Test that unknown pulled ids are appended after local records."""
        existing = [LocalRecord(id="local-1", title="Mine")]
        pulled = [LocalRecord(id="google-1", title="Theirs")]

        merged = merge_records(existing, pulled)

        assert [r.id for r in merged] == ["local-1", "google-1"]

    def test_duplicates_collapse(self):
        """Test that repeated ids keep a single record."""
        existing = [
            LocalRecord(id="google-1", title="A"),
            LocalRecord(id="google-1", title="A again"),
        ]
        pulled = [
            LocalRecord(id="google-2", title="B"),
            LocalRecord(id="google-2", title="B again"),
        ]

        merged = merge_records(existing, pulled)

        assert [r.id for r in merged] == ["google-1", "google-2"]
        assert merged[1].title == "B again"

    def test_merge_callback_receives_local_and_remote(self):
        """Test that the merge callback decides the stored record."""
        local = LocalRecord(id="google-1", title="Local", priority=True)
        remote = LocalRecord(id="google-1", title="Remote")
        merge = MagicMock(return_value=remote)

        merge_records([local], [remote], merge)

        merge.assert_called_once_with(local, remote)


class TestSyncPull:
    """Tests for the pull half of sync()."""

    def test_pulls_remote_tasks_into_mirrored_collection(self, make_provider):
        """Test that remote tasks land in a local collection of the same name."""
        client = my_tasks_client(
            [
                {"id": "t1", "title": "Buy milk"},
                {"id": "t2", "title": "Call mom", "status": "completed"},
            ]
        )
        provider = make_provider("google-tasks", client)

        result = provider.sync()

        assert result.success is True
        assert result.todos_pulled == 2
        local = provider.repository.find_collection_by_name("My Tasks")
        records = provider.repository.get_records(local.id)
        assert [r.id for r in records] == ["google-t1", "google-t2"]
        assert records[1].completed is True
        assert all(r.synced_at for r in records)

    def test_target_is_remembered(self, make_provider):
        """Test that the discovered target id is stored in the config."""
        provider = make_provider("google-tasks", my_tasks_client())

        provider.sync()

        assert provider.config.collection_id == "L1"

    def test_repeated_pulls_do_not_duplicate(self, make_provider):
        """Test that syncing twice keeps one local record per remote task."""
        client = my_tasks_client([{"id": "t1", "title": "Buy milk"}])
        provider = make_provider("google-tasks", client)

        provider.sync()
        provider.sync()

        local = provider.repository.find_collection_by_name("My Tasks")
        assert len(provider.repository.get_records(local.id)) == 1
        assert client.created == []
        assert client.updated == []

    def test_remote_wins_but_priority_is_kept(self, make_provider):
        """Test that pulling overwrites remote fields and keeps local priority."""
        client = my_tasks_client([{"id": "t1", "title": "Remote title"}])
        provider = make_provider("google-tasks", client)
        local = provider.repository.create_collection("My Tasks")
        provider.repository.save_records(
            local.id,
            [
                LocalRecord(
                    id="google-t1",
                    title="Local title",
                    priority=True,
                    updated_at="2026-01-01T00:00:00+00:00",
                    synced_at="2026-01-02T00:00:00+00:00",
                )
            ],
        )

        provider.sync()

        record = provider.repository.get_records(local.id)[0]
        assert record.title == "Remote title"
        assert record.priority is True

    def test_other_remote_lists_are_mirrored(self, make_provider):
        """Test that every remote list gets a local counterpart."""
        client = FakeClient(
            collections=[
                RemoteCollection(id="L1", title="My Tasks"),
                RemoteCollection(id="L2", title="Groceries"),
            ],
            records={"L1": [], "L2": [{"id": "g1", "title": "Eggs"}]},
        )
        provider = make_provider("google-tasks", client)

        result = provider.sync()

        groceries = provider.repository.find_collection_by_name("Groceries")
        assert groceries is not None
        assert [r.title for r in provider.repository.get_records(groceries.id)] == [
            "Eggs"
        ]
        assert result.todos_pulled == 1

    def test_mirror_failure_becomes_warning(self, make_provider):
        """Test that a list that cannot be pulled does not fail the sync."""
        client = FakeClient(
            collections=[
                RemoteCollection(id="L1", title="My Tasks"),
                RemoteCollection(id="L2", title="Shared"),
            ],
        )
        original = client.list_records

        def list_records(collection_id):
            if collection_id == "L2":
                raise SyncError(SyncErrorKind.PERMISSION_DENIED, "Forbidden")
            return original(collection_id)

        client.list_records = list_records
        provider = make_provider("google-tasks", client)

        result = provider.sync()

        assert result.success is True
        assert any("Shared" in warning for warning in result.warnings)


class TestSyncPush:
    """Tests for the push half of sync()."""

    def test_new_local_records_are_created_and_linked(self, make_provider):
        """Test that local-only records are created and their ids rewritten."""
        client = my_tasks_client(ids=["abc"])
        provider = make_provider("google-tasks", client)
        local = provider.repository.create_collection("My Tasks")
        provider.repository.save_records(
            local.id, [LocalRecord(id="local-1", title="Buy milk")]
        )

        result = provider.sync()

        assert result.success is True
        assert result.todos_pushed == 1
        assert result.id_map == {"local-1": "google-abc"}
        assert client.created == [("L1", {"title": "Buy milk"})]
        record = provider.repository.get_records(local.id)[0]
        assert record.id == "google-abc"
        assert record.synced_at is not None

    def test_second_sync_does_not_push_again(self, make_provider):
        """Test that a pushed record is not pushed again when unchanged."""
        client = my_tasks_client()
        provider = make_provider("google-tasks", client)
        local = provider.repository.create_collection("My Tasks")
        provider.repository.save_records(
            local.id, [LocalRecord(id="local-1", title="Buy milk")]
        )

        provider.sync()
        result = provider.sync()

        assert len(client.created) == 1
        assert client.updated == []
        assert result.todos_pushed == 0

    def edit_locally(self, provider, record_id, title):
        local = provider.repository.find_collection_by_name("My Tasks")
        records = provider.repository.get_records(local.id)
        for record in records:
            if record.id == record_id:
                record.title = title
                record.updated_at = "2099-01-01T00:00:00.000Z"
        provider.repository.save_records(local.id, records)
        return local

    def test_locally_modified_linked_record_is_updated(self, make_provider):
        """Test that a local edit to a pulled record survives the next pull."""
        client = my_tasks_client([{"id": "t1", "title": "Buy milk"}])
        provider = make_provider("google-tasks", client)
        provider.sync()
        local = self.edit_locally(provider, "google-t1", "Buy oat milk")

        result = provider.sync()

        assert result.todos_pushed == 1
        assert client.updated[0][:2] == ("L1", "t1")
        assert client.updated[0][2]["title"] == "Buy oat milk"
        assert client.updated[0][2]["status"] == "needsAction"
        record = provider.repository.get_records(local.id)[0]
        assert record.title == "Buy oat milk"
        assert record.id == "google-t1"

    def test_edit_of_unchanged_remote_record_with_timestamp(self, make_provider):
        """Test that a remote record last updated before the sync loses to the edit."""
        client = my_tasks_client(
            [{"id": "t1", "title": "Buy milk", "updated": "2026-01-01T00:00:00.000Z"}]
        )
        provider = make_provider("google-tasks", client)
        provider.sync()
        self.edit_locally(provider, "google-t1", "Buy oat milk")

        provider.sync()

        assert client.records["L1"][0]["title"] == "Buy oat milk"

    def test_remote_change_after_sync_wins_conflict(self, make_provider):
        """Test that a record changed on both sides keeps the remote version."""
        client = my_tasks_client(
            [{"id": "t1", "title": "Buy soy milk", "updated": "2026-01-03T00:00:00Z"}]
        )
        provider = make_provider("google-tasks", client)
        local = provider.repository.create_collection("My Tasks")
        provider.repository.save_records(
            local.id,
            [
                LocalRecord(
                    id="google-t1",
                    title="Buy oat milk",
                    updated_at="2026-01-02T00:00:00Z",
                    synced_at="2026-01-01T00:00:00Z",
                )
            ],
        )

        result = provider.sync()

        assert result.todos_pushed == 0
        assert client.updated == []
        record = provider.repository.get_records(local.id)[0]
        assert record.title == "Buy soy milk"

    def test_record_deleted_remotely_is_unlinked(self, make_provider):
        """Test that an edited record whose remote copy is gone is created again."""
        client = my_tasks_client([{"id": "t1", "title": "Buy milk"}], ids=["t2"])
        provider = make_provider("google-tasks", client)
        provider.sync()
        local = self.edit_locally(provider, "google-t1", "Buy oat milk")
        client.records["L1"] = []

        first = provider.sync()

        assert any("was deleted" in warning for warning in first.warnings)
        [record] = provider.repository.get_records(local.id)
        assert not record.id.startswith("google-")

        second = provider.sync()

        assert second.warnings == []
        assert client.created == [("L1", {"title": "Buy oat milk"})]
        assert provider.repository.get_records(local.id)[0].id == "google-t2"

    def test_failed_item_becomes_warning(self, make_provider):
        """Test that one failing record does not stop the others."""
        client = my_tasks_client(ids=["ok"])
        client.fail_titles["Broken"] = SyncError(
            SyncErrorKind.VALIDATION_ERROR, "Invalid value"
        )
        provider = make_provider("google-tasks", client)
        local = provider.repository.create_collection("My Tasks")
        provider.repository.save_records(
            local.id,
            [
                LocalRecord(id="local-1", title="Works"),
                LocalRecord(id="local-2", title="Broken"),
            ],
        )

        result = provider.sync()

        assert result.success is True
        assert result.todos_pushed == 1
        assert any("local-2" in warning for warning in result.warnings)
        records = {r.id: r for r in provider.repository.get_records(local.id)}
        assert "google-ok" in records
        assert records["local-2"].synced_at is None


class TestSyncFailures:
    """Tests for sync() failure handling."""

    def test_disabled_provider(self, make_provider):
        """Test that a disabled provider returns a failed result."""
        client = my_tasks_client()
        provider = make_provider("google-tasks", client, enabled=False)

        result = provider.sync()

        assert result.success is False
        assert "disabled" in result.message
        provider.build_client.assert_not_called()

    def test_concurrent_sync_is_rejected(self, make_provider):
        """Test that a second sync while one runs returns immediately."""
        provider = make_provider("google-tasks", my_tasks_client())

        with provider.engine._lock:
            result = provider.sync()

        assert result.success is False
        assert "already in progress" in result.message
        assert result.error.kind == SyncErrorKind.SYNC_FAILED

    def test_lock_released_after_failure(self, make_provider, gateway):
        """Test that a failed attempt does not block the next one."""
        provider = make_provider("google-tasks", my_tasks_client())
        gateway.get_valid_access_token.side_effect = [
            SyncError(SyncErrorKind.AUTH_REQUIRED, "Not connected"),
            "access-token",
        ]

        assert provider.sync().success is False
        assert provider.engine.in_progress is False
        assert provider.sync().success is True

    def test_auth_failure_is_reported(self, make_provider, gateway):
        """Test that a missing credential fails the sync with AUTH_REQUIRED."""
        gateway.get_valid_access_token.side_effect = SyncError(
            SyncErrorKind.AUTH_REQUIRED, "Not connected"
        )
        provider = make_provider("google-tasks", my_tasks_client())

        result = provider.sync()

        assert result.success is False
        assert result.error.kind == SyncErrorKind.AUTH_REQUIRED
        assert "connect" in result.message

    def test_unexpected_exception_is_classified(self, make_provider, gateway):
        """Test that arbitrary exceptions never escape sync()."""
        gateway.get_valid_access_token.side_effect = RuntimeError("boom")
        provider = make_provider("google-tasks", my_tasks_client())

        result = provider.sync()

        assert result.success is False
        assert result.error.kind == SyncErrorKind.UNKNOWN_ERROR

    @patch("time.sleep")
    def test_transient_list_failure_is_retried(self, mock_sleep, make_provider):
        """Test that listing collections is retried on network errors."""
        client = my_tasks_client()
        collections = list(client.collections)
        client.list_collections = MagicMock(
            side_effect=[ConnectionError("connection reset"), collections]
        )
        provider = make_provider("google-tasks", client)

        result = provider.sync()

        assert result.success is True
        assert client.list_collections.call_count == 2
        mock_sleep.assert_called_once()

    @patch("time.sleep")
    def test_permanent_failure_is_not_retried(self, mock_sleep, make_provider):
        """Test that a 403 fails immediately."""
        client = my_tasks_client()
        client.list_collections = MagicMock(side_effect=make_http_error(403))
        provider = make_provider("google-tasks", client)

        result = provider.sync()

        assert result.success is False
        assert result.error.kind == SyncErrorKind.PERMISSION_DENIED
        assert client.list_collections.call_count == 1
        mock_sleep.assert_not_called()


class TestTargetDiscovery:
    """Tests for choosing the remote collection to sync with."""

    def test_configured_collection_is_used(self, make_provider):
        """Test that a configured id wins over the default rule."""
        client = FakeClient(
            collections=[
                RemoteCollection(id="L1", title="My Tasks"),
                RemoteCollection(id="L2", title="Work"),
            ],
            ids=["new"],
        )
        provider = make_provider("google-tasks", client, collection_id="L2")
        local = provider.repository.create_collection("Work")
        provider.repository.save_records(
            local.id, [LocalRecord(id="local-1", title="Report")]
        )

        provider.sync()

        assert client.created[0][0] == "L2"

    def test_stale_collection_id_is_rediscovered(self, make_provider):
        """Test that a deleted configured list falls back to the default rule."""
        on_change = MagicMock()
        provider = make_provider(
            "google-tasks", my_tasks_client(), collection_id="gone"
        )
        provider.engine.on_config_change = on_change

        result = provider.sync()

        assert result.success is True
        assert provider.config.collection_id == "L1"
        assert on_change.call_count == 2

    def test_preferred_name_wins_over_fallback(self, make_provider):
        """Test that the default collection name is preferred."""
        client = FakeClient(
            collections=[
                RemoteCollection(id="L1", title="My Tasks"),
                RemoteCollection(id="L2", title="Dashboard Personnel"),
            ]
        )
        provider = make_provider("google-tasks", client)

        provider.sync()

        assert provider.config.collection_id == "L2"

    def test_default_collection_created_when_none_match(self, make_provider):
        """Test that a list is created when no default can be found."""
        client = FakeClient()
        provider = make_provider("google-tasks", client)

        result = provider.sync()

        assert result.success is True
        assert [c.title for c in client.collections] == ["Dashboard Personnel"]
        assert provider.config.collection_id == "list-1"
        assert provider.repository.find_collection_by_name("Dashboard Personnel")

    def test_target_deleted_during_sync_is_rediscovered(self, make_provider):
        """Test that a NOT_FOUND while pulling the target triggers rediscovery."""
        client = my_tasks_client([{"id": "t1", "title": "Buy milk"}])
        provider = make_provider("google-tasks", client, collection_id="L1")
        local = provider.repository.create_collection("My Tasks")
        original = client.list_records
        client.list_records = MagicMock(
            side_effect=[
                SyncError(SyncErrorKind.NOT_FOUND, "Not Found"),
                original("L1"),
            ]
        )

        result = provider.sync()

        assert result.success is True
        assert result.todos_pulled == 1
        assert len(provider.repository.get_records(local.id)) == 1


class TestPushRecords:
    """Tests for push_records."""

    def test_push_rewrites_ids(self, make_provider):
        """Test that created records get linked ids and a sync timestamp."""
        client = my_tasks_client(ids=["abc"])
        provider = make_provider("google-tasks", client)
        record = LocalRecord(id="local-1", title="Buy milk")

        id_map = provider.push_todos([record])

        assert id_map == {"local-1": "google-abc"}
        assert record.id == "google-abc"
        assert record.synced_at is not None

    def test_missing_named_collection_is_created(self, make_provider):
        """Test that pushing to an unknown list name creates it."""
        client = my_tasks_client()
        provider = make_provider("google-tasks", client)

        provider.push_todos([LocalRecord(id="local-1", title="A")], "Errands")

        assert client.collections[-1].title == "Errands"
        assert client.created[0][0] == client.collections[-1].id

    def test_failed_item_is_left_unchanged(self, make_provider):
        """Test that per-item failures are logged, not raised."""
        client = my_tasks_client()
        client.fail_titles["A"] = SyncError(SyncErrorKind.SERVER_ERROR, "Backend")
        provider = make_provider("google-tasks", client)
        record = LocalRecord(id="local-1", title="A")

        id_map = provider.push_todos([record])

        assert id_map == {}
        assert record.id == "local-1"
        assert record.synced_at is None

    def test_token_failure_raises(self, make_provider, gateway):
        """Test that push raises when no token is available."""
        gateway.get_valid_access_token.side_effect = SyncError(
            SyncErrorKind.AUTH_EXPIRED, "expired"
        )
        provider = make_provider("google-tasks", my_tasks_client())

        with pytest.raises(SyncError) as exc_info:
            provider.push_todos([LocalRecord(id="local-1", title="A")])

        assert exc_info.value.kind == SyncErrorKind.AUTH_EXPIRED

    def test_disabled_provider_raises(self, make_provider):
        """Test that explicit operations refuse to run when disabled."""
        provider = make_provider("google-tasks", my_tasks_client(), enabled=False)

        with pytest.raises(SyncError):
            provider.push_todos([LocalRecord(id="local-1", title="A")])


class TestPullRecords:
    """Tests for pull_records."""

    def test_pull_returns_linked_records(self, make_provider):
        """Test that pulled records carry linked ids."""
        client = my_tasks_client(
            [{"id": "t1", "title": "A"}, {"id": "t1", "title": "A"}]
        )
        provider = make_provider("google-tasks", client)

        records = provider.pull_todos()

        assert [r.id for r in records] == ["google-t1"]

    def test_pull_skips_deleted_tasks(self, make_provider):
        """Test that deleted and hidden tasks are not returned."""
        client = my_tasks_client(
            [
                {"id": "t1", "title": "A", "deleted": True},
                {"id": "t2", "title": "B", "hidden": True},
                {"id": "t3", "title": "C"},
            ]
        )
        provider = make_provider("google-tasks", client)

        assert [r.id for r in provider.pull_todos()] == ["google-t3"]

    def test_pull_unknown_name_raises_not_found(self, make_provider):
        """Test that pulling a missing named list fails without creating it."""
        client = my_tasks_client()
        provider = make_provider("google-tasks", client)

        with pytest.raises(SyncError) as exc_info:
            provider.pull_todos("Nope")

        assert exc_info.value.kind == SyncErrorKind.NOT_FOUND
        assert len(client.collections) == 1


class TestDelete:
    """Tests for delete_remote and delete_local_record."""

    def test_delete_unlinked_id_is_rejected(self, make_provider):
        """Test that local-only ids cannot be deleted remotely."""
        provider = make_provider("google-tasks", my_tasks_client())

        with pytest.raises(SyncError) as exc_info:
            provider.engine.delete_remote("local-1")

        assert exc_info.value.kind == SyncErrorKind.VALIDATION_ERROR
        provider.build_client.assert_not_called()

    def test_delete_linked_record(self, make_provider):
        """Test that the remote id is passed to the client."""
        client = my_tasks_client([{"id": "t1", "title": "A"}])
        provider = make_provider("google-tasks", client)

        assert provider.engine.delete_remote("google-t1") is True
        assert client.deleted == [("L1", "t1")]

    def test_delete_already_gone(self, make_provider):
        """Test that deleting an absent record reports False."""
        provider = make_provider("google-tasks", my_tasks_client())

        assert provider.engine.delete_remote("google-t1") is False

    def _stored(self, provider, record_id):
        local = provider.repository.create_collection("My Tasks")
        provider.repository.save_records(
            local.id, [LocalRecord(id=record_id, title="A")]
        )
        return local

    def test_delete_local_record_removes_both(self, make_provider):
        """Test that a linked record is deleted remotely and locally."""
        client = my_tasks_client([{"id": "t1", "title": "A"}])
        provider = make_provider("google-tasks", client)
        local = self._stored(provider, "google-t1")

        warnings = provider.delete_local_record(local.id, "google-t1")

        assert warnings == []
        assert client.deleted == [("L1", "t1")]
        assert provider.repository.get_records(local.id) == []

    def test_delete_local_record_remote_already_gone(self, make_provider):
        """Test that a missing remote copy only produces a warning."""
        provider = make_provider("google-tasks", my_tasks_client())
        local = self._stored(provider, "google-t1")

        warnings = provider.delete_local_record(local.id, "google-t1")

        assert len(warnings) == 1
        assert "already deleted" in warnings[0]
        assert provider.repository.get_records(local.id) == []

    def test_delete_local_record_remote_failure(self, make_provider):
        """Test that the local delete happens even if the remote one fails."""
        client = my_tasks_client()
        client.delete_record = MagicMock(
            side_effect=SyncError(SyncErrorKind.SERVER_ERROR, "Backend Error")
        )
        provider = make_provider("google-tasks", client)
        local = self._stored(provider, "google-t1")

        warnings = provider.delete_local_record(local.id, "google-t1")

        assert "locally only" in warnings[0]
        assert provider.repository.get_records(local.id) == []

    def test_delete_local_only_record(self, make_provider):
        """Test that unlinked records never touch the provider."""
        provider = make_provider("google-tasks", my_tasks_client())
        local = self._stored(provider, "local-1")

        assert provider.delete_local_record(local.id, "local-1") == []
        provider.build_client.assert_not_called()
        assert provider.repository.get_records(local.id) == []
