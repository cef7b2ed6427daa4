"""
Remote Multi-User Ledger Storage

One table holds every user's transactions. The table itself lives in
an external service (see google_sheets.py); this module only knows the
RemoteTable contract: select / insert / delete_where by equality
filters.

Every filter sent to the table includes userId. That is the boundary
that keeps one shop from seeing another shop's books.
"""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import ValidationError

from shop_ledger.logger import get_logger
from shop_ledger.models.transaction import Transaction, new_transaction_id
from shop_ledger.services.storage.interface import (
    LedgerStorageInterface,
    PersistenceError,
    check_ownership,
)


logger = get_logger(__name__)

TRANSACTIONS_TABLE = "transactions"


class RemoteTable(ABC):
    """
    Contract of the remote database collaborator.

    Rows are plain dicts keyed by wire field names. Implementations
    raise PersistenceError (or a subclass) on any failure.
    """

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: dict[str, str],
    ) -> list[dict[str, Any]]:
        """Return rows whose fields equal every filter value."""
        pass

    @abstractmethod
    async def insert(
        self,
        table: str,
        rows: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """Append rows in one call; all of them or none of them."""
        pass

    @abstractmethod
    async def delete_where(
        self,
        table: str,
        filters: dict[str, str],
    ) -> int:
        """Delete rows matching every filter; return how many went."""
        pass


class RemoteLedgerStorage(LedgerStorageInterface):
    """
    Ledger storage on a shared remote table.

    No locking across devices: last write wins at the row level, and
    deleting an id twice is harmless.
    """

    name = "remote"

    def __init__(self, table: RemoteTable, table_name: str = TRANSACTIONS_TABLE):
        self._table = table
        self._table_name = table_name

    async def load_all(self, user_id: str) -> list[Transaction]:
        """Load the user's rows from the shared table."""
        if not user_id:
            raise PersistenceError("Cannot load transactions without a user id")

        rows = await self._table.select(self._table_name, {"userId": user_id})

        transactions = []
        for row in rows:
            # The filter is applied remotely, but a row for anyone
            # else must never reach the caller.
            if row.get("userId") != user_id:
                logger.error(
                    "remote_row_owner_mismatch",
                    user_id=user_id,
                    row_id=row.get("id"),
                )
                continue
            try:
                transactions.append(Transaction.model_validate(row))
            except ValidationError:
                logger.warning("remote_row_skipped", row_id=row.get("id"))
        return transactions

    async def insert(
        self,
        user_id: str,
        records: list[Transaction],
    ) -> list[Transaction]:
        """Insert all records in a single table call."""
        check_ownership(user_id, records)
        if not records:
            return []

        stored = [
            record if record.id else record.model_copy(update={"id": new_transaction_id()})
            for record in records
        ]
        await self._table.insert(
            self._table_name,
            [record.to_record() for record in stored],
        )
        logger.info(
            "transactions_inserted",
            backend=self.name,
            user_id=user_id,
            count=len(stored),
        )
        return stored

    async def delete_by_id(self, transaction_id: str, user_id: str) -> bool:
        """Delete where id AND userId match."""
        if not user_id:
            raise PersistenceError("Cannot delete transactions without a user id")

        deleted = await self._table.delete_where(
            self._table_name,
            {"id": transaction_id, "userId": user_id},
        )
        logger.info(
            "transaction_deleted",
            backend=self.name,
            user_id=user_id,
            transaction_id=transaction_id,
            removed=deleted > 0,
        )
        return deleted > 0
