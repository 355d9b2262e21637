"""S3 object store operations used by tenant migrations.

Wraps a boto3 S3 client and translates botocore failures into the
migration error hierarchy: a missing object becomes ObjectNotFoundError,
everything else becomes BackendError.
"""

from __future__ import annotations

import logging
from typing import Iterable, List

from botocore.exceptions import BotoCoreError, ClientError

from config import DELETE_BATCH_SIZE
from migration_errors import BackendError, ObjectNotFoundError
from migration_utils import chunked

NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})
MISSING_BUCKET_CODES = frozenset({"404", "NoSuchBucket", "NotFound"})


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _status_code(error: ClientError) -> int | None:
    return error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")


def is_not_found(error: ClientError) -> bool:
    """Return True when a ClientError is the S3 equivalent of HTTP 404."""
    return _error_code(error) in NOT_FOUND_CODES or _status_code(error) == 404


class ObjectStoreClient:
    """Bucket and object operations against a single S3 account"""

    def __init__(self, s3, region: str | None = None):
        self.s3 = s3
        self.region = region

    def bucket_exists(self, bucket: str) -> bool:
        """Return True if the bucket exists and is reachable with our credentials."""
        try:
            self.s3.head_bucket(Bucket=bucket)
        except ClientError as e:
            if _error_code(e) in MISSING_BUCKET_CODES or _status_code(e) == 404:
                return False
            raise BackendError(f"Failed to check bucket {bucket}: {e}") from e
        except BotoCoreError as e:
            raise BackendError(f"Failed to check bucket {bucket}: {e}") from e
        return True

    def create_bucket(self, bucket: str) -> None:
        """
        Create a bucket.

        Note:
            us-east-1 (and endpoints without a region) reject an explicit
            LocationConstraint, every other region requires one.
        """
        kwargs = {"Bucket": bucket}
        if self.region and self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        try:
            self.s3.create_bucket(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise BackendError(f"Failed to create bucket {bucket}: {e}") from e
        logging.info("Created bucket %s", bucket)

    def copy_object(self, src_bucket: str, key: str, dst_bucket: str, dst_key: str) -> None:
        """
        Server-side copy of one object.

        Uses the managed transfer copy so objects above the 5 GB single
        request limit are copied in parts.

        Raises:
            ObjectNotFoundError: The source object does not exist
            BackendError: Any other failure, including a missing bucket
        """
        copy_source = {"Bucket": src_bucket, "Key": key}
        try:
            self.s3.copy(copy_source, dst_bucket, dst_key)
        except ClientError as e:
            # a vanished bucket is a 404 too, never a skippable missing object
            if is_not_found(e) and _error_code(e) != "NoSuchBucket":
                raise ObjectNotFoundError(src_bucket, key) from e
            raise BackendError(
                f"Failed to copy {key} from {src_bucket} to {dst_bucket}: {e}"
            ) from e
        except BotoCoreError as e:
            raise BackendError(
                f"Failed to copy {key} from {src_bucket} to {dst_bucket}: {e}"
            ) from e

    def delete_object(self, bucket: str, key: str) -> None:
        """Delete one object. Deleting a key that does not exist is not an error."""
        try:
            self.s3.delete_object(Bucket=bucket, Key=key)
        except ClientError as e:
            if is_not_found(e):
                return
            raise BackendError(f"Failed to delete {key} from {bucket}: {e}") from e
        except BotoCoreError as e:
            raise BackendError(f"Failed to delete {key} from {bucket}: {e}") from e

    def delete_objects(self, bucket: str, keys: Iterable[str]) -> int:
        """
        Delete keys in DeleteObjects batches of at most DELETE_BATCH_SIZE.

        Keys that are already gone count as deleted.

        Returns:
            Number of keys deleted

        Raises:
            BackendError: If a request fails or any key reports another error
        """
        keys = list(keys)
        deleted = 0
        for batch in chunked(keys, DELETE_BATCH_SIZE):
            deleted += self._delete_batch(bucket, batch)
        return deleted

    def _delete_batch(self, bucket: str, keys: List[str]) -> int:
        objects = [{"Key": key} for key in keys]
        try:
            response = self.s3.delete_objects(
                Bucket=bucket, Delete={"Objects": objects, "Quiet": True}
            )
        except (ClientError, BotoCoreError) as e:
            raise BackendError(f"Failed to delete {len(keys)} objects from {bucket}: {e}") from e

        errors = [
            error
            for error in response.get("Errors", [])
            if error.get("Code") not in NOT_FOUND_CODES
        ]
        if errors:
            details = ", ".join(
                f"{error.get('Key')}: {error.get('Code')} {error.get('Message')}"
                for error in errors[:5]
            )
            raise BackendError(
                f"Failed to delete {len(errors)} of {len(keys)} objects from {bucket}: {details}"
            )
        return len(keys)


__all__ = ["ObjectStoreClient", "is_not_found"]
