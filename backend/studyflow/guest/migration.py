"""
Guest → account migration.

Replays every guest record into the remote store under a freshly
authenticated account, then wipes the local guest data. Writes are issued
one at a time; the first failure stops the run, leaves local data in place
and does not undo records already written remotely. Re-running after a
failure can therefore create duplicates on the remote side.

Nothing is sent while any stored guest item fails to decode, since the
wipe at the end would otherwise discard it.
"""

from __future__ import annotations

import logging

from ..services.models import (
    MIGRATION_ORDER,
    CollectionCounts,
    MigrationResult,
)
from ..services.remote_client import RemoteStore
from .local_store import COLLECTION_LAYOUTS, LocalGuestStore

logger = logging.getLogger(__name__)


def migrate_guest_data(
    account_id: str,
    guest_store: LocalGuestStore,
    remote: RemoteStore,
) -> MigrationResult:
    """
    Move all guest data into `account_id`'s remote collections.

    Args:
        account_id: The newly authenticated account
        guest_store: Local store holding the guest's data
        remote: Remote store to write into

    Returns:
        MigrationResult; on failure `error` is set and `migrated_count`
        holds the records written before the failing call.
    """
    if not guest_store.is_guest_mode():
        return MigrationResult(success=True, migrated_count=0)

    counts = CollectionCounts()
    migrated = 0

    try:
        stats = guest_store.stats()
        if stats.is_empty:
            guest_store.clear_all()
            logger.info("No guest data to migrate for %s", account_id)
            return MigrationResult(success=True, migrated_count=0, per_collection_counts=counts)

        if stats.unreadable:
            logger.error(
                "Guest migration for %s refused: %d unreadable stored item(s)",
                account_id, stats.unreadable,
            )
            return MigrationResult(
                success=False,
                migrated_count=0,
                per_collection_counts=counts,
                error=f"{stats.unreadable} guest record(s) could not be read; local data kept",
            )

        for collection in MIGRATION_ORDER:
            records = guest_store.get_all(collection)
            # Replay in authoring order so remote creation times line up
            if COLLECTION_LAYOUTS[collection].newest_first:
                records = list(reversed(records))

            for record in records:
                remote.add_record(account_id, collection, record.to_fields())
                migrated += 1
                setattr(counts, collection.value, getattr(counts, collection.value) + 1)

        guest_store.clear_all()

    except Exception as e:
        logger.exception("Guest migration failed for %s after %d records", account_id, migrated)
        return MigrationResult(
            success=False,
            migrated_count=migrated,
            per_collection_counts=counts,
            error=str(e) or e.__class__.__name__,
        )

    logger.info("Migrated %d guest records to %s", migrated, account_id)
    return MigrationResult(success=True, migrated_count=migrated, per_collection_counts=counts)
