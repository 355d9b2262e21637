#!/usr/bin/env python3
"""
Multibucket tenant migration tool.

Moves a user's objects to another bucket of a multibucket object store and
points the user at the new bucket. The user is disabled while the objects
are moved.

Usage:
    python multibucket_migrate.py move-user alice bucket-2 --parallel 8
    python multibucket_migrate.py move-user alice bucket-2 --max-allowed-files 50000
    python multibucket_migrate.py by-bucket bucket-1
    python multibucket_migrate.py list alice [--count]
"""
import argparse
import logging
from typing import Optional, Sequence

import config
from aws_utils import create_s3_client
from migration_errors import (
    AlreadyOnTargetError,
    NotConfiguredError,
    UnsupportedBackendError,
)
from migration_progress import MigrationStep, ProgressEvent, ProgressSink
from migration_utils import ProgressTracker
from object_catalog import ObjectCatalog
from object_store import ObjectStoreClient
from tenant_migrator import TenantMigrator, repoint_committed
from tenant_state import DatabaseConnection, TenantStateStore


class ConsoleProgressSink(ProgressSink):  # pylint: disable=too-few-public-methods
    """Renders migration progress on the console"""

    def __init__(self):
        self.count = 0
        self.state = ""
        self.progress: Optional[ProgressTracker] = None
        self.max_files_reached = False

    def _start_phase(self, state: str, message: str, label: str):
        if self.state != state:
            print(message)
            self.state = state
            self.progress = ProgressTracker(total=self.count, label=label)

    def _finish_progress(self):
        # a user without objects never starts a progress line
        if self.progress:
            self.progress.finish()
            self.progress = None

    def emit(self, event: ProgressEvent) -> None:
        step = event.step
        if step == MigrationStep.WARN:
            print(f"\n  ⚠️  {event.value}\n")
        elif step == MigrationStep.CREATE:
            print("Creating target bucket")
        elif step == MigrationStep.COUNT:
            self.count = int(event.value)
        elif step == MigrationStep.MAX_FILES_REACHED:
            self.max_files_reached = True
        elif step == MigrationStep.COPY:
            self._start_phase("copy", f"Copying {self.count:,} objects to target bucket", "Copied")
            self.progress.advance(int(event.value))
        elif step == MigrationStep.CONFIG:
            self._finish_progress()
            print("Setting user to use new bucket")
            self.state = "config"
        elif step == MigrationStep.DELETE:
            self._start_phase("delete", "Deleting objects in old bucket", "Deleted")
            self.progress.advance(int(event.value))
        elif step == MigrationStep.DONE:
            self._finish_progress()


def create_migrator(
    db_path: Optional[str] = None, parallel: int = 1, connect_s3: bool = True
) -> TenantMigrator:
    """Factory function to create a TenantMigrator with all dependencies"""
    db_conn = DatabaseConnection(db_path or config.STATE_DB_PATH)
    state = TenantStateStore(db_conn)
    catalog = ObjectCatalog(db_conn)
    store = None
    if connect_s3:
        s3 = create_s3_client(max_pool_connections=parallel)
        store = ObjectStoreClient(s3, region=config.S3_REGION)
    return TenantMigrator(state, catalog, store)


def move_user(migrator: TenantMigrator, args) -> int:  # pylint: disable=too-many-return-statements
    """Disable the user, move them to the target bucket and re-enable them"""
    if not migrator.is_multi_bucket():
        print("✗ Multibucket is not setup")
        return 1
    user_id = args.user_id
    target_bucket = args.target_bucket
    if not migrator.state.tenant_exists(user_id):
        print(f"✗ Unknown user {user_id}")
        return 1
    source_bucket = migrator.get_current_bucket(user_id)
    if source_bucket == target_bucket:
        print(f"✗ User {user_id} is already using bucket {target_bucket}")
        return 1

    sink = ConsoleProgressSink()
    try:
        print("Disabling user")
        migrator.state.set_tenant_enabled(user_id, False)
        migrator.move_tenant(
            user_id,
            target_bucket,
            parallel=args.parallel,
            max_allowed_objects=args.max_allowed_files,
            sink=sink,
        )
    except Exception as e:
        if sink.max_files_reached:
            print(f"✗ {e}")
            print("Enabling user")
            migrator.state.set_tenant_enabled(user_id, True)
            return 1
        if args.restore_on_failure and not repoint_committed(e):
            print("✗ Error while migrating, restoring user")
            migrator.set_tenant_bucket(user_id, source_bucket)
            migrator.state.set_tenant_enabled(user_id, True)
        elif args.restore_on_failure:
            print("✗ Error after the user was moved to the new bucket, leaving user disabled")
        else:
            print("✗ Error while migrating, user has been left disabled")
        raise
    print("\nRe-enabling user")
    migrator.state.set_tenant_enabled(user_id, True)
    return 0


def by_bucket(migrator: TenantMigrator, args) -> int:
    """List all users using the specified bucket"""
    for user_id in sorted(migrator.get_tenants_for_bucket(args.bucket)):
        print(user_id)
    return 0


def list_objects(migrator: TenantMigrator, args) -> int:
    """List all objects owned by a user"""
    if not migrator.state.tenant_exists(args.user_id):
        print(f"✗ Unknown user {args.user_id}")
        return 1
    try:
        if args.count:
            print(migrator.count_objects(args.user_id))
        else:
            for key in migrator.list_objects(args.user_id):
                print(key)
    except UnsupportedBackendError as e:
        print(f"✗ {e}")
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser"""
    parser = argparse.ArgumentParser(
        description="Move users between buckets of a multibucket object store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--db", help=f"State database path (default: {config.STATE_DB_PATH})")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    move = subparsers.add_parser("move-user", help="Move a user to a different bucket")
    move.add_argument("user_id", help="Id of the user to migrate")
    move.add_argument("target_bucket", help="Bucket to migrate the user to")
    move.add_argument(
        "--parallel",
        type=int,
        default=config.DEFAULT_PARALLEL,
        help="Number of S3 copy commands to run in parallel",
    )
    move.add_argument(
        "--max-allowed-files",
        type=int,
        default=config.DEFAULT_MAX_ALLOWED_OBJECTS,
        help="Maximum number of allowed objects to be migrated (-1 = unlimited)",
    )
    move.add_argument(
        "--restore-on-failure",
        action="store_true",
        help="Restore and re-activate the user on errors",
    )
    move.set_defaults(handler=move_user, connect_s3=True)

    bucket = subparsers.add_parser("by-bucket", help="List all users using the specified bucket")
    bucket.add_argument("bucket", help="Bucket to list users for")
    bucket.set_defaults(handler=by_bucket, connect_s3=False)

    listing = subparsers.add_parser("list", help="List all objects owned by a user")
    listing.add_argument("user_id", help="Id of the user to list objects for")
    listing.add_argument(
        "-c",
        "--count",
        action="store_true",
        help="Only return the number of objects instead of listing them all",
    )
    listing.set_defaults(handler=list_objects, connect_s3=False)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for multibucket migration"""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )
    parallel = getattr(args, "parallel", 1)
    migrator = create_migrator(args.db, parallel=parallel, connect_s3=args.connect_s3)
    try:
        return args.handler(migrator, args)
    except (NotConfiguredError, AlreadyOnTargetError) as e:
        print(f"✗ {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
