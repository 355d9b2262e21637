"""Tests for the copy phase of TenantMigrator: missing objects, failures and parallel waves."""

from unittest import mock

import pytest

from migration_errors import BackendError
from object_catalog import ObjectCatalog, object_key
from tenant_migrator import MigrationPhase, TenantMigrator, repoint_committed
from tests.object_store_test_utils import FakeObjectStore
from tests.progress_test_utils import RecordingSink


def _make_migrator(state_store, object_ids, store):
    """TenantMigrator whose catalog reports ``object_ids`` for tenant alice on bucket src."""
    state_store.add_tenant("alice")
    state_store.set_bucket("alice", "src")
    catalog = mock.Mock(spec=ObjectCatalog)
    catalog.get_home_storage.return_value = 7
    catalog.list_object_ids.return_value = list(object_ids)
    store.add_objects("src", [object_key(fileid) for fileid in object_ids])
    store.add_objects("dst", [])
    return TenantMigrator(state_store, catalog, store)


@pytest.mark.parametrize("parallel", [1, 3])
def test_missing_object_is_warned_and_skipped(state_store, parallel):
    """A 404 on one copy produces one warning; everything else still moves."""
    store = FakeObjectStore()
    migrator = _make_migrator(state_store, [41, 42, 43, 44], store)
    store.buckets["src"].discard("urn:oid:42")
    sink = RecordingSink()

    run = migrator.move_tenant("alice", "dst", parallel=parallel, sink=sink)

    warnings = [event.value for event in sink.events if event.step.value == "warn"]
    assert warnings == ["Object with key urn:oid:42 not found in source bucket, skipping"]
    assert store.buckets["dst"] == {"urn:oid:41", "urn:oid:43", "urn:oid:44"}
    assert store.buckets["src"] == set()
    assert state_store.get_bucket("alice") == "dst"
    assert sink.steps()[-1] == "done"
    assert run.missing == ["urn:oid:42"]
    assert run.copied == 3


def test_serial_copy_failure_aborts_before_repoint(state_store):
    """A non-404 copy failure stops the run with the source bucket still in charge."""
    store = FakeObjectStore()
    migrator = _make_migrator(state_store, [1, 2, 3, 4], store)
    store.fail_copy_keys.add("urn:oid:2")
    sink = RecordingSink()

    with pytest.raises(BackendError) as exc_info:
        migrator.move_tenant("alice", "dst", sink=sink)

    assert exc_info.value.phase == MigrationPhase.COPYING.value
    assert not repoint_committed(exc_info.value)
    assert store.copied_keys() == ["urn:oid:1", "urn:oid:2"]
    assert "delete_objects" not in store.call_names()
    assert "config" not in sink.steps()
    assert state_store.get_bucket("alice") == "src"
    assert len(store.buckets["src"]) == 4


def test_parallel_copy_failure_stops_later_chunks(state_store):
    """A failure inside a wave aborts the run; later waves never start."""
    store = FakeObjectStore()
    migrator = _make_migrator(state_store, list(range(1, 7)), store)
    store.fail_copy_keys.add("urn:oid:1")
    sink = RecordingSink()

    with pytest.raises(BackendError):
        migrator.move_tenant("alice", "dst", parallel=2, sink=sink)

    assert set(store.copied_keys()) <= {"urn:oid:1", "urn:oid:2"}
    assert sink.pairs() == [("count", 6), ("copy", 2)]
    assert state_store.get_bucket("alice") == "src"
    assert "delete_objects" not in store.call_names()


def test_parallel_copy_respects_bound(state_store):
    """No more than ``parallel`` copies are ever in flight and every object is copied once."""
    store = FakeObjectStore(copy_delay=0.01)
    object_ids = list(range(1, 21))
    migrator = _make_migrator(state_store, object_ids, store)
    sink = RecordingSink()

    migrator.move_tenant("alice", "dst", parallel=4, sink=sink)

    assert store.max_in_flight <= 4
    assert sorted(store.copied_keys()) == sorted(object_key(fileid) for fileid in object_ids)
    copy_events = [event.value for event in sink.events if event.step.value == "copy"]
    assert copy_events == [4, 4, 4, 4, 4]


def test_parallel_copy_uneven_last_chunk(state_store):
    """The final wave carries the remainder."""
    store = FakeObjectStore()
    migrator = _make_migrator(state_store, list(range(1, 8)), store)
    sink = RecordingSink()

    run = migrator.move_tenant("alice", "dst", parallel=3, sink=sink)

    copy_events = [event.value for event in sink.events if event.step.value == "copy"]
    assert copy_events == [3, 3, 1]
    assert run.copied == 7


def test_copy_uses_same_key_in_both_buckets(state_store):
    """Objects keep their key when copied."""
    store = FakeObjectStore()
    migrator = _make_migrator(state_store, [5], store)

    migrator.move_tenant("alice", "dst")

    copy_calls = [call for call in store.calls if call[0] == "copy_object"]
    assert copy_calls == [("copy_object", "src", "urn:oid:5", "dst", "urn:oid:5")]


def test_bucket_creation_failure_aborts_without_copies(state_store):
    """A failed bucket creation leaves everything untouched."""
    store = FakeObjectStore()
    migrator = _make_migrator(state_store, [1, 2], store)
    store.fail_create = True

    with pytest.raises(BackendError) as exc_info:
        migrator.move_tenant("alice", "new-bucket")

    assert exc_info.value.phase == MigrationPhase.CREATING_BUCKET.value
    assert store.copied_keys() == []
    assert state_store.get_bucket("alice") == "src"
