"""
Configuration for the multibucket tenant migration tool.

Static values live here as module constants. Deployment specific values
(state database location, S3 endpoint, timeouts) are read from the
environment, optionally seeded from a .env file:

- Explicit path passed to load_env_file()
- MULTIBUCKET_ENV_FILE environment variable
- ~/.env
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

__all__ = [
    "OBJECT_KEY_PREFIX",
    "DELETE_BATCH_SIZE",
    "DEFAULT_PARALLEL",
    "DEFAULT_MAX_ALLOWED_OBJECTS",
    "FOLDER_MIMETYPE",
    "MULTIBUCKET_CONFIG_KEY",
    "HOME_STORAGE_PREFIX",
    "STATE_DB_PATH",
    "S3_ENDPOINT_URL",
    "S3_REGION",
    "S3_CONNECT_TIMEOUT",
    "S3_READ_TIMEOUT",
    "S3_MAX_ATTEMPTS",
    "load_env_file",
]

# Object keys are derived from catalog file ids: urn:oid:<fileid>
OBJECT_KEY_PREFIX: str = "urn:oid:"

# S3 DeleteObjects accepts up to 1000 keys; batches stay well below that
DELETE_BATCH_SIZE: int = 500

# Copy parallelism (1 = serial) and object cap (-1 = unlimited)
DEFAULT_PARALLEL: int = 1
DEFAULT_MAX_ALLOWED_OBJECTS: int = -1

# Catalog entries with this mimetype are directories and are never migrated
FOLDER_MIMETYPE: str = "httpd/unix-directory"

# system_config key whose presence marks the deployment as multibucket
MULTIBUCKET_CONFIG_KEY: str = "objectstore_multibucket"

# Home storages backed by the object store are registered as object::user:<id>
HOME_STORAGE_PREFIX: str = "object::user:"


def _resolve_env_path(env_path: Optional[str] = None) -> str:
    if env_path:
        return env_path
    env_file = os.environ.get("MULTIBUCKET_ENV_FILE")
    if env_file:
        return env_file
    return str(Path.home() / ".env")


def load_env_file(env_path: Optional[str] = None) -> str:
    """Load variables from the resolved .env file without overriding the environment."""
    resolved_path = _resolve_env_path(env_path)
    load_dotenv(resolved_path)
    return resolved_path


load_env_file()

STATE_DB_PATH: str = os.getenv("MULTIBUCKET_STATE_DB", "multibucket_state.db")

# Unset endpoint means AWS itself; set it for Ceph, MinIO and friends
S3_ENDPOINT_URL: Optional[str] = os.getenv("S3_ENDPOINT_URL") or None
S3_REGION: Optional[str] = os.getenv("S3_REGION") or None

S3_CONNECT_TIMEOUT: int = int(os.getenv("S3_CONNECT_TIMEOUT", "10"))
S3_READ_TIMEOUT: int = int(os.getenv("S3_READ_TIMEOUT", "60"))
S3_MAX_ATTEMPTS: int = int(os.getenv("S3_MAX_ATTEMPTS", "5"))
