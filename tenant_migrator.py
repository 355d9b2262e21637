"""Moving a tenant's objects between buckets of a multibucket object store.

A run copies every object of the tenant's home storage from the current
bucket to the target bucket, repoints the tenant to the target bucket and
then deletes the source copies:

    validate → create bucket → copy → repoint → delete

The repoint is the only write that changes which bucket serves the tenant.
It happens after every copy finished and before the first delete, so a run
that dies at any point leaves either the complete source bucket in charge
or the target bucket in charge with stale leftovers in the source.
"""

from __future__ import annotations

import logging
import sqlite3
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Set, Tuple, Union

from config import DEFAULT_MAX_ALLOWED_OBJECTS, DEFAULT_PARALLEL, DELETE_BATCH_SIZE
from migration_errors import (
    AlreadyOnTargetError,
    MetadataWriteError,
    MigrationError,
    NotConfiguredError,
    ObjectNotFoundError,
    TooManyObjectsError,
    UnsupportedBackendError,
)
from migration_progress import MigrationStep, ProgressEvent, ProgressSink
from migration_utils import chunked
from object_catalog import ObjectCatalog, object_key
from object_store import ObjectStoreClient
from tenant_state import TenantStateStore


class MigrationPhase(Enum):
    """Phases of a single tenant migration run"""

    IDLE = "idle"
    VALIDATING = "validating"
    CREATING_BUCKET = "creating_bucket"
    COPYING = "copying"
    REPOINTING = "repointing"
    DELETING = "deleting"
    DONE = "done"
    ABORTED = "aborted"


# Once a run reaches one of these phases the target bucket is authoritative
REPOINTED_PHASES = frozenset({MigrationPhase.DELETING.value, MigrationPhase.DONE.value})


def repoint_committed(error: BaseException) -> bool:
    """Return True if the failed run had already pointed the tenant at the target bucket.

    Errors that never passed through move_tenant() carry no phase and count as not committed.
    """
    return getattr(error, "phase", None) in REPOINTED_PHASES


@dataclass
class MigrationRun:  # pylint: disable=too-many-instance-attributes
    """In-memory state of one move_tenant() call"""

    tenant_id: str
    target_bucket: str
    source_bucket: Optional[str] = None
    object_ids: Tuple[int, ...] = ()
    phase: MigrationPhase = MigrationPhase.IDLE
    copied: int = 0
    missing: List[str] = field(default_factory=list)
    deleted: int = 0


def _emit(sink: ProgressSink, step: MigrationStep, value: Union[int, str] = 0) -> None:
    sink.emit(ProgressEvent(step, value))


class TenantMigrator:
    """Inventory and migration operations for tenants of a multibucket deployment"""

    def __init__(
        self,
        state: TenantStateStore,
        catalog: ObjectCatalog,
        store: Optional[ObjectStoreClient] = None,
    ):
        self.state = state
        self.catalog = catalog
        self.store = store

    def is_multi_bucket(self) -> bool:
        return self.state.is_multi_bucket()

    def get_current_bucket(self, tenant_id: str) -> Optional[str]:
        return self.state.get_bucket(tenant_id)

    def set_tenant_bucket(self, tenant_id: str, bucket: str) -> None:
        """Write the tenant's bucket assignment directly (used to restore a failed run)."""
        self.state.set_bucket(tenant_id, bucket)

    def get_tenants_for_bucket(self, bucket: str) -> Set[str]:
        return self.state.get_tenants_for_bucket(bucket)

    def _require_home_storage(self, tenant_id: str) -> int:
        storage = self.catalog.get_home_storage(tenant_id)
        if storage is None:
            raise UnsupportedBackendError(
                f"User {tenant_id} does not use an object store as primary storage"
            )
        return storage

    def list_objects(self, tenant_id: str) -> List[str]:
        """Return the object keys owned by the tenant's home storage."""
        storage = self._require_home_storage(tenant_id)
        return [object_key(fileid) for fileid in self.catalog.list_object_ids(storage)]

    def count_objects(self, tenant_id: str) -> int:
        storage = self._require_home_storage(tenant_id)
        return self.catalog.count_objects(storage)

    def move_tenant(  # pylint: disable=too-many-arguments,too-many-positional-arguments
        self,
        tenant_id: str,
        target_bucket: str,
        parallel: int = DEFAULT_PARALLEL,
        max_allowed_objects: int = DEFAULT_MAX_ALLOWED_OBJECTS,
        sink: Optional[ProgressSink] = None,
    ) -> MigrationRun:
        """
        Move every object of a tenant to ``target_bucket`` and repoint the tenant.

        Args:
            tenant_id: Tenant to migrate
            target_bucket: Bucket to migrate to, created if missing
            parallel: Number of copies to run concurrently (1 = serial)
            max_allowed_objects: Refuse tenants with more objects than this (-1 = no cap)
            sink: Receives progress events

        Returns:
            The finished MigrationRun

        Raises:
            MigrationError: Any failure; ``error.phase`` names the phase it happened in
        """
        sink = sink or ProgressSink()
        run = MigrationRun(tenant_id=tenant_id, target_bucket=target_bucket)
        try:
            self._validate(run, max_allowed_objects, sink)
            _emit(sink, MigrationStep.COUNT, len(run.object_ids))
            self._ensure_target_bucket(run, sink)
            self._copy_objects(run, parallel, sink)
            _emit(sink, MigrationStep.CONFIG)
            self._repoint(run)
            self._delete_source_objects(run, sink)
            run.phase = MigrationPhase.DONE
            _emit(sink, MigrationStep.DONE)
        except MigrationError as e:
            self._abort(run, e)
            raise
        except Exception as e:
            error = MigrationError(f"Unexpected error during {run.phase.value}: {e}")
            self._abort(run, error)
            raise error from e
        logging.info(
            "Moved %s from %s to %s: %d copied, %d missing, %d deleted",
            tenant_id,
            run.source_bucket,
            target_bucket,
            run.copied,
            len(run.missing),
            run.deleted,
        )
        return run

    def _abort(self, run: MigrationRun, error: MigrationError) -> None:
        error.phase = run.phase.value
        logging.error(
            "Migration of %s to %s aborted during %s: %s",
            run.tenant_id,
            run.target_bucket,
            run.phase.value,
            error,
        )
        run.phase = MigrationPhase.ABORTED

    def _validate(self, run: MigrationRun, max_allowed_objects: int, sink: ProgressSink) -> None:
        run.phase = MigrationPhase.VALIDATING
        if not self.state.is_multi_bucket():
            raise NotConfiguredError("Multibucket is not setup")
        storage = self._require_home_storage(run.tenant_id)
        source_bucket = self.state.get_bucket(run.tenant_id)
        if source_bucket is None:
            raise UnsupportedBackendError(f"User {run.tenant_id} has no bucket assigned")
        if source_bucket == run.target_bucket:
            raise AlreadyOnTargetError(
                f"User {run.tenant_id} already used bucket {run.target_bucket}"
            )
        run.source_bucket = source_bucket
        run.object_ids = tuple(self.catalog.list_object_ids(storage))

        if 0 <= max_allowed_objects < len(run.object_ids):
            _emit(sink, MigrationStep.MAX_FILES_REACHED)
            raise TooManyObjectsError(run.tenant_id, len(run.object_ids), max_allowed_objects)

    def _ensure_target_bucket(self, run: MigrationRun, sink: ProgressSink) -> None:
        run.phase = MigrationPhase.CREATING_BUCKET
        if not self.store.bucket_exists(run.target_bucket):
            _emit(sink, MigrationStep.CREATE)
            self.store.create_bucket(run.target_bucket)

    def _copy_objects(self, run: MigrationRun, parallel: int, sink: ProgressSink) -> None:
        run.phase = MigrationPhase.COPYING
        if parallel > 1:
            self._copy_parallel(run, parallel, sink)
        else:
            self._copy_serial(run, sink)

    def _copy_one(self, run: MigrationRun, key: str) -> bool:
        """Copy one object; return False if it is missing from the source bucket."""
        try:
            self.store.copy_object(run.source_bucket, key, run.target_bucket, key)
        except ObjectNotFoundError:
            return False
        return True

    def _record_copy(self, run: MigrationRun, key: str, copied: bool, sink: ProgressSink):
        if copied:
            run.copied += 1
            return
        run.missing.append(key)
        message = f"Object with key {key} not found in source bucket, skipping"
        logging.warning("%s (user %s)", message, run.tenant_id)
        _emit(sink, MigrationStep.WARN, message)

    def _copy_serial(self, run: MigrationRun, sink: ProgressSink) -> None:
        for fileid in run.object_ids:
            _emit(sink, MigrationStep.COPY, 1)
            key = object_key(fileid)
            self._record_copy(run, key, self._copy_one(run, key), sink)

    def _copy_parallel(self, run: MigrationRun, parallel: int, sink: ProgressSink) -> None:
        with ThreadPoolExecutor(max_workers=parallel, thread_name_prefix="copy") as executor:
            for chunk in chunked(run.object_ids, parallel):
                _emit(sink, MigrationStep.COPY, len(chunk))
                keys = [object_key(fileid) for fileid in chunk]
                futures = [executor.submit(self._copy_one, run, key) for key in keys]
                _, pending = wait(futures, return_when=FIRST_EXCEPTION)
                for future in futures:
                    if future.done() and future.exception() is not None:
                        for other in pending:
                            other.cancel()
                        raise future.exception()
                for key, future in zip(keys, futures):
                    self._record_copy(run, key, future.result(), sink)

    def _repoint(self, run: MigrationRun) -> None:
        run.phase = MigrationPhase.REPOINTING
        try:
            self.state.set_bucket(run.tenant_id, run.target_bucket)
        except sqlite3.Error as first_error:
            # the copy phase can take hours, the database may have gone away meanwhile
            logging.warning(
                "Setting bucket for %s failed (%s), reconnecting and retrying once",
                run.tenant_id,
                first_error,
            )
            try:
                self.state.reconnect()
                self.state.set_bucket(run.tenant_id, run.target_bucket)
            except sqlite3.Error as e:
                raise MetadataWriteError(
                    f"Failed to set bucket {run.target_bucket} for user {run.tenant_id}: {e}"
                ) from e

    def _delete_source_objects(self, run: MigrationRun, sink: ProgressSink) -> None:
        run.phase = MigrationPhase.DELETING
        keys = [object_key(fileid) for fileid in run.object_ids]
        for chunk in chunked(keys, DELETE_BATCH_SIZE):
            _emit(sink, MigrationStep.DELETE, len(chunk))
            run.deleted += self.store.delete_objects(run.source_bucket, chunk)


__all__ = [
    "MigrationPhase",
    "MigrationRun",
    "TenantMigrator",
    "repoint_committed",
]
