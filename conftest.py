"""Pytest configuration and shared fixtures for the multibucket migration tool."""

# pylint: disable=wrong-import-position

import sys
from pathlib import Path
from unittest import mock

PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pytest

from config import FOLDER_MIMETYPE
from object_catalog import ObjectCatalog, home_storage_id
from tenant_state import DatabaseConnection, TenantStateStore
from tests.catalog_test_utils import add_file, register_storage


@pytest.fixture(autouse=True)
def mock_env_file(tmp_path, monkeypatch):
    """Point the .env lookup at a temporary file with fake S3 credentials."""
    env_file = tmp_path / ".env"
    env_file.write_text("AWS_ACCESS_KEY_ID=test_key\nAWS_SECRET_ACCESS_KEY=test_secret\n")
    monkeypatch.setenv("MULTIBUCKET_ENV_FILE", str(env_file))
    yield str(env_file)


@pytest.fixture(name="temp_db")
def fixture_temp_db(tmp_path):
    """Provide a temporary SQLite path for stateful tests."""
    db_path = tmp_path / "multibucket_state.db"
    yield str(db_path)
    db_path.unlink(missing_ok=True)


@pytest.fixture(name="mock_print")
def fixture_mock_print(monkeypatch):
    """Patch builtins.print and return the mock for assertions."""
    patched = mock.Mock()
    monkeypatch.setattr("builtins.print", patched)
    return patched


@pytest.fixture(name="db_conn")
def fixture_db_conn(temp_db):
    """Return a DatabaseConnection bound to the temporary path."""
    conn = DatabaseConnection(temp_db)
    yield conn
    conn.close()


@pytest.fixture(name="state_store")
def fixture_state_store(db_conn):
    """TenantStateStore with multibucket enabled."""
    store = TenantStateStore(db_conn)
    store.set_multibucket_config({"class": "S3", "arguments": {"bucket": "bucket-"}})
    return store


@pytest.fixture(name="catalog")
def fixture_catalog(db_conn):
    """ObjectCatalog on the shared temporary database."""
    return ObjectCatalog(db_conn)


@pytest.fixture(name="add_tenant")
def fixture_add_tenant(state_store, db_conn):
    """Factory that registers a tenant on a bucket with ``file_count`` files and one folder.

    Returns the list of created file ids.
    """

    def _add_tenant(tenant_id: str, bucket: str, file_count: int):
        state_store.add_tenant(tenant_id)
        state_store.set_bucket(tenant_id, bucket)
        storage = register_storage(db_conn, home_storage_id(tenant_id))
        add_file(db_conn, storage, "files", FOLDER_MIMETYPE)
        return [
            add_file(db_conn, storage, f"files/file-{idx}.txt", "text/plain", size=idx)
            for idx in range(file_count)
        ]

    return _add_tenant
