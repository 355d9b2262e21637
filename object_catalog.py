"""File catalog queries: which objects does a tenant's home storage own"""

from typing import List, Optional

from config import FOLDER_MIMETYPE, HOME_STORAGE_PREFIX, OBJECT_KEY_PREFIX
from tenant_state import DatabaseConnection

# an unregistered folder mimetype means the storage has no folders
_NOT_A_FOLDER = "mimetype NOT IN (SELECT id FROM mimetypes WHERE mimetype = ?)"


def object_key(fileid: int) -> str:
    """Return the object store key for a catalog file id."""
    return f"{OBJECT_KEY_PREFIX}{fileid}"


def home_storage_id(tenant_id: str) -> str:
    """Return the storage id string of a tenant's object store home."""
    return f"{HOME_STORAGE_PREFIX}{tenant_id}"


class ObjectCatalog:
    """Read-only queries against the filecache"""

    def __init__(self, db_conn: DatabaseConnection):
        self.db_conn = db_conn

    def get_home_storage(self, tenant_id: str) -> Optional[int]:
        """Return the numeric storage id of the tenant's object store home, if any."""
        with self.db_conn.get_connection() as conn:
            row = conn.execute(
                "SELECT numeric_id FROM storages WHERE storage_id = ?",
                (home_storage_id(tenant_id),),
            ).fetchone()
        return row["numeric_id"] if row else None

    def list_object_ids(self, storage: int) -> List[int]:
        """Return ids of every non-directory entry in ``storage``, ordered by file id."""
        with self.db_conn.get_connection() as conn:
            rows = conn.execute(
                f"""
                SELECT fileid FROM filecache
                WHERE storage = ? AND {_NOT_A_FOLDER}
                ORDER BY fileid
                """,
                (storage, FOLDER_MIMETYPE),
            ).fetchall()
        return [int(row["fileid"]) for row in rows]

    def count_objects(self, storage: int) -> int:
        """Count the entries list_object_ids() would return."""
        with self.db_conn.get_connection() as conn:
            row = conn.execute(
                f"""
                SELECT COUNT(fileid) AS total FROM filecache
                WHERE storage = ? AND {_NOT_A_FOLDER}
                """,
                (storage, FOLDER_MIMETYPE),
            ).fetchone()
        return int(row["total"])


__all__ = ["ObjectCatalog", "object_key", "home_storage_id"]
