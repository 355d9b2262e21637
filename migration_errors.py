"""Exception hierarchy for tenant bucket migrations."""

from __future__ import annotations

from typing import Optional


class MigrationError(Exception):
    """Base class for all migration failures.

    ``phase`` holds the MigrationPhase value the run had reached when the
    error was raised, so callers can tell whether the repoint already
    happened.
    """

    phase: Optional[str] = None


class NotConfiguredError(MigrationError):
    """The deployment is not configured for multiple buckets."""


class UnknownTenantError(MigrationError):
    """No tenant with the requested id exists."""


class AlreadyOnTargetError(MigrationError):
    """The tenant already uses the requested target bucket."""


class TooManyObjectsError(MigrationError):
    """The tenant owns more objects than the run is allowed to migrate."""

    def __init__(self, tenant_id: str, object_count: int, max_allowed: int):
        super().__init__(
            f"User {tenant_id} has more files than the allowed to be migrated "
            f"({object_count:,} > {max_allowed:,})"
        )
        self.tenant_id = tenant_id
        self.object_count = object_count
        self.max_allowed = max_allowed


class UnsupportedBackendError(MigrationError):
    """The tenant's home storage is not backed by the object store."""


class ObjectNotFoundError(MigrationError):
    """A single object is missing from the bucket it was expected in."""

    def __init__(self, bucket: str, key: str):
        super().__init__(f"Object with key {key} not found in bucket {bucket}")
        self.bucket = bucket
        self.key = key


class BackendError(MigrationError):
    """The object store rejected an operation."""


class MetadataWriteError(MigrationError):
    """The bucket assignment could not be written, even after reconnecting."""
