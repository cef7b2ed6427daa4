"""
Local Snapshot Storage Implementation

DESIGN DECISION: All users of one device share a single blob (a JSON
list of every transaction), partitioned internally by userId. This is
what the app has always stored locally, so existing snapshots keep
working.

TRADEOFFS:
- Every write rewrites the whole blob (fine for one shop's ledger)
- No cross-device sharing (use transfer codes or the Sheets backend)

CRITICAL: A write must never touch another user's partition. Every
write is read entire blob -> partition by user -> replace current
partition -> verify other partitions -> write entire blob, under one
lock. Writing only the current user's slice would silently delete
everyone else's data.
"""

import asyncio
import json
from collections import Counter
from typing import Any, Optional

from pydantic import ValidationError

from shop_ledger.config import get_settings
from shop_ledger.logger import get_logger
from shop_ledger.models.transaction import Transaction, new_transaction_id
from shop_ledger.services.storage.interface import (
    LedgerStorageInterface,
    PartitionIntegrityError,
    PersistenceError,
    check_ownership,
)
from shop_ledger.services.storage.snapshot_file import SnapshotFile


logger = get_logger(__name__)


def _fingerprint(rows: list[Any]) -> Counter:
    """Order-insensitive identity of a set of raw entries."""
    return Counter(
        json.dumps(row, sort_keys=True, ensure_ascii=False, default=str)
        for row in rows
    )


def _owned_by(entry: Any, user_id: str) -> bool:
    return isinstance(entry, dict) and entry.get("userId") == user_id


class LocalSnapshotStorage(LedgerStorageInterface):
    """
    Per-device snapshot implementation of ledger storage.

    Entries are kept in the blob exactly as they were written; entries
    that no longer parse (or are not objects at all) are skipped on
    load but preserved on write.
    """

    name = "local"

    def __init__(
        self,
        snapshot: Optional[SnapshotFile] = None,
        blob_key: Optional[str] = None,
    ):
        settings = get_settings().local_snapshot
        self._snapshot = snapshot or SnapshotFile(settings.data_path)
        self._blob_key = blob_key or settings.blob_key

    # ------------------------------------------------------------------
    # Blob helpers (synchronous, run under the snapshot lock)
    # ------------------------------------------------------------------

    def _read_blob(self) -> list[Any]:
        blob = self._snapshot.read(self._blob_key, default=[])
        if not isinstance(blob, list):
            raise PersistenceError(
                f"Snapshot {self._blob_key} does not hold a list of transactions"
            )
        return blob

    def _replace_partition(
        self,
        user_id: str,
        build_partition,
    ) -> list[dict[str, Any]]:
        """
        Read-merge-write the whole blob.

        build_partition receives the user's current rows and returns
        the rows that should replace them. Before writing, the blob is
        read again: if anything outside this user's partition changed
        in the meantime (another process), nothing is written.
        """
        with self._snapshot.lock:
            blob = self._read_blob()
            others = [entry for entry in blob if not _owned_by(entry, user_id)]
            mine = [entry for entry in blob if _owned_by(entry, user_id)]

            new_partition = build_partition(mine)

            if any(not _owned_by(row, user_id) for row in new_partition):
                raise PartitionIntegrityError(
                    "Refusing to write rows for another user"
                )

            current_others = [
                entry for entry in self._read_blob()
                if not _owned_by(entry, user_id)
            ]
            if _fingerprint(current_others) != _fingerprint(others):
                logger.error("snapshot_changed_during_write", user_id=user_id)
                raise PartitionIntegrityError(
                    "Another user's transactions changed during the write; "
                    "nothing was saved"
                )

            self._snapshot.write(self._blob_key, others + new_partition)
            return new_partition

    def _load_sync(self, user_id: str) -> list[Transaction]:
        with self._snapshot.lock:
            blob = self._read_blob()

        transactions = []
        skipped = 0
        for row in blob:
            if not _owned_by(row, user_id):
                continue
            try:
                transactions.append(Transaction.model_validate(row))
            except ValidationError:
                skipped += 1
        if skipped:
            logger.warning(
                "snapshot_rows_skipped",
                user_id=user_id,
                skipped=skipped,
            )
        return transactions

    # ------------------------------------------------------------------
    # LedgerStorageInterface
    # ------------------------------------------------------------------

    async def load_all(self, user_id: str) -> list[Transaction]:
        """Load the user's partition."""
        return await asyncio.to_thread(self._load_sync, user_id)

    async def insert(
        self,
        user_id: str,
        records: list[Transaction],
    ) -> list[Transaction]:
        """Prepend records to the user's partition, newest first."""
        check_ownership(user_id, records)
        stored = [
            record if record.id else record.model_copy(update={"id": new_transaction_id()})
            for record in records
        ]
        new_rows = [record.to_record() for record in stored]

        await asyncio.to_thread(
            self._replace_partition,
            user_id,
            lambda mine: new_rows + mine,
        )
        logger.info(
            "transactions_inserted",
            backend=self.name,
            user_id=user_id,
            count=len(stored),
        )
        return stored

    async def delete_by_id(self, transaction_id: str, user_id: str) -> bool:
        """Remove one of the user's rows; other users' rows are never matched."""
        removed = []

        def without_target(mine: list[dict[str, Any]]) -> list[dict[str, Any]]:
            kept = []
            for row in mine:
                if row.get("id") == transaction_id:
                    removed.append(row)
                else:
                    kept.append(row)
            return kept

        await asyncio.to_thread(self._replace_partition, user_id, without_target)
        logger.info(
            "transaction_deleted",
            backend=self.name,
            user_id=user_id,
            transaction_id=transaction_id,
            removed=bool(removed),
        )
        return bool(removed)
