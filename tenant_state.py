"""Tenant state stored in SQLite: system configuration, tenants,
bucket assignments and the file catalog tables read by ObjectCatalog."""

import json
import sqlite3
from contextlib import contextmanager
from typing import Dict, Optional, Set

from config import MULTIBUCKET_CONFIG_KEY
from migration_errors import NotConfiguredError, UnknownTenantError
from migration_utils import get_utc_now

SYSTEM_CONFIG_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS system_config (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
"""

TENANT_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS tenants (
        tenant_id TEXT PRIMARY KEY,
        display_name TEXT,
        enabled BOOLEAN NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
"""

TENANT_BUCKET_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS tenant_buckets (
        tenant_id TEXT PRIMARY KEY,
        bucket TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
"""

STORAGE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS storages (
        numeric_id INTEGER PRIMARY KEY AUTOINCREMENT,
        storage_id TEXT NOT NULL UNIQUE
    )
"""

MIMETYPE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS mimetypes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        mimetype TEXT NOT NULL UNIQUE
    )
"""

FILECACHE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS filecache (
        fileid INTEGER PRIMARY KEY AUTOINCREMENT,
        storage INTEGER NOT NULL,
        path TEXT NOT NULL,
        mimetype INTEGER NOT NULL,
        size INTEGER NOT NULL DEFAULT 0,
        UNIQUE (storage, path)
    )
"""

TABLE_DEFINITIONS = (
    SYSTEM_CONFIG_TABLE_SQL,
    TENANT_TABLE_SQL,
    TENANT_BUCKET_TABLE_SQL,
    STORAGE_TABLE_SQL,
    MIMETYPE_TABLE_SQL,
    FILECACHE_TABLE_SQL,
)

INDEX_DEFINITIONS = (
    "CREATE INDEX IF NOT EXISTS idx_tenant_buckets_bucket ON tenant_buckets(bucket)",
    "CREATE INDEX IF NOT EXISTS idx_filecache_storage_mimetype ON filecache(storage, mimetype)",
)


class DatabaseConnection:
    """Owns one SQLite connection and the schema.

    The connection is kept open between calls; connect() replaces it, which
    is how callers recover after the database went away during a long run.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._init_schema()

    def connect(self) -> sqlite3.Connection:
        """(Re)open the connection, discarding the previous one."""
        self.close()
        self._conn = sqlite3.connect(self.db_path, timeout=30.0)
        self._conn.row_factory = sqlite3.Row
        return self._conn

    def close(self) -> None:
        """Close the connection if one is open."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @contextmanager
    def get_connection(self):
        """Yield the shared connection; commit on success, roll back on error."""
        conn = self._conn if self._conn is not None else self.connect()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def _init_schema(self):
        with self.get_connection() as conn:
            for statement in TABLE_DEFINITIONS:
                conn.execute(statement)
            for statement in INDEX_DEFINITIONS:
                conn.execute(statement)


class TenantStateStore:
    """Reads and writes tenant bucket assignments and related state"""

    def __init__(self, db_conn: DatabaseConnection):
        self.db_conn = db_conn

    def reconnect(self) -> None:
        """Drop the current database connection and open a fresh one."""
        self.db_conn.connect()

    # System configuration

    def set_multibucket_config(self, settings: Dict) -> None:
        """Store the multibucket object store configuration (enables multibucket mode)."""
        now = get_utc_now()
        with self.db_conn.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO system_config (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (MULTIBUCKET_CONFIG_KEY, json.dumps(settings), now),
            )

    def get_multibucket_config(self) -> Optional[Dict]:
        """Return the multibucket configuration, or None when it is absent or malformed."""
        with self.db_conn.get_connection() as conn:
            row = conn.execute(
                "SELECT value FROM system_config WHERE key = ?", (MULTIBUCKET_CONFIG_KEY,)
            ).fetchone()
        if row is None:
            return None
        try:
            settings = json.loads(row["value"])
        except json.JSONDecodeError:
            return None
        return settings if isinstance(settings, dict) else None

    def is_multi_bucket(self) -> bool:
        """Whether the deployment stores tenants across multiple buckets."""
        return self.get_multibucket_config() is not None

    # Tenants

    def add_tenant(self, tenant_id: str, display_name: Optional[str] = None, enabled: bool = True):
        """Register a tenant; existing tenants are left untouched."""
        now = get_utc_now()
        with self.db_conn.get_connection() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO tenants
                    (tenant_id, display_name, enabled, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (tenant_id, display_name, enabled, now, now),
            )

    def tenant_exists(self, tenant_id: str) -> bool:
        with self.db_conn.get_connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM tenants WHERE tenant_id = ?", (tenant_id,)
            ).fetchone()
        return row is not None

    def set_tenant_enabled(self, tenant_id: str, enabled: bool) -> None:
        with self.db_conn.get_connection() as conn:
            cursor = conn.execute(
                "UPDATE tenants SET enabled = ?, updated_at = ? WHERE tenant_id = ?",
                (enabled, get_utc_now(), tenant_id),
            )
            if cursor.rowcount == 0:
                raise UnknownTenantError(f"Unknown user {tenant_id}")

    def is_tenant_enabled(self, tenant_id: str) -> bool:
        with self.db_conn.get_connection() as conn:
            row = conn.execute(
                "SELECT enabled FROM tenants WHERE tenant_id = ?", (tenant_id,)
            ).fetchone()
        if row is None:
            raise UnknownTenantError(f"Unknown user {tenant_id}")
        return bool(row["enabled"])

    # Bucket assignments

    def get_bucket(self, tenant_id: str) -> Optional[str]:
        """
        Return the bucket the tenant currently resolves to.

        Returns:
            Bucket name, or None if the tenant has no assignment yet

        Raises:
            NotConfiguredError: If multibucket is not configured
        """
        if not self.is_multi_bucket():
            raise NotConfiguredError("Multibucket is not setup")
        with self.db_conn.get_connection() as conn:
            row = conn.execute(
                "SELECT bucket FROM tenant_buckets WHERE tenant_id = ?", (tenant_id,)
            ).fetchone()
        return row["bucket"] if row else None

    def set_bucket(self, tenant_id: str, bucket: str) -> None:
        """Point the tenant at ``bucket``. Overwrites any existing assignment."""
        with self.db_conn.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO tenant_buckets (tenant_id, bucket, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(tenant_id) DO UPDATE SET bucket = excluded.bucket,
                    updated_at = excluded.updated_at
                """,
                (tenant_id, bucket, get_utc_now()),
            )

    def get_tenants_for_bucket(self, bucket: str) -> Set[str]:
        """Return ids of existing tenants assigned to ``bucket``."""
        with self.db_conn.get_connection() as conn:
            rows = conn.execute(
                """
                SELECT DISTINCT tb.tenant_id FROM tenant_buckets tb
                JOIN tenants t ON t.tenant_id = tb.tenant_id
                WHERE tb.bucket = ?
                """,
                (bucket,),
            ).fetchall()
        return {row["tenant_id"] for row in rows}


__all__ = ["DatabaseConnection", "TenantStateStore"]
