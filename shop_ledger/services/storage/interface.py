"""
Abstract Ledger Storage Interface

DESIGN DECISION: We define an abstract interface for ledger storage.
This allows us to:
1. Run on a single device with a local snapshot
2. Share one remote table between many users and devices
3. Use in-memory fakes for testing
4. Keep aggregation and transfer logic decoupled from storage

Every operation is scoped to one user. A backend must never return,
and never delete, a record owned by somebody else.
"""

from abc import ABC, abstractmethod

from shop_ledger.models.transaction import Transaction


class LedgerStorageInterface(ABC):
    """
    Abstract interface for transaction storage.

    Any backend (local snapshot, Google Sheets, ...) must implement
    these methods. Writes are never retried by the backend.
    """

    name: str = "storage"

    @abstractmethod
    async def load_all(self, user_id: str) -> list[Transaction]:
        """
        Load every transaction owned by a user.

        Args:
            user_id: The owning identity

        Returns:
            The user's transactions, in no guaranteed order

        Raises:
            PersistenceError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def insert(
        self,
        user_id: str,
        records: list[Transaction],
    ) -> list[Transaction]:
        """
        Append transactions to a user's partition.

        Records without an id get one. Existing records are kept.

        Args:
            user_id: The owning identity; every record must carry it
            records: Transactions to append

        Returns:
            The records as stored (with ids)

        Raises:
            PersistenceError: If a record belongs to another user or
                the write fails
        """
        pass

    @abstractmethod
    async def delete_by_id(self, transaction_id: str, user_id: str) -> bool:
        """
        Delete one transaction, matching on id AND owner.

        Args:
            transaction_id: The transaction's id
            user_id: The owning identity

        Returns:
            True if a record was removed, False if nothing matched
            (a repeated delete is a no-op, not an error)

        Raises:
            PersistenceError: If the write fails
        """
        pass


def check_ownership(user_id: str, records: list[Transaction]) -> None:
    """Refuse a write that carries somebody else's records."""
    if not user_id:
        raise PersistenceError("Cannot write transactions without a user id")
    for record in records:
        if record.user_id != user_id:
            raise PersistenceError(
                f"Transaction {record.id or '<new>'} belongs to another user"
            )


class PersistenceError(Exception):
    """Base exception for ledger storage operations."""
    pass


class PartitionIntegrityError(PersistenceError):
    """A write would have changed another user's partition."""
    pass


class ConnectionError(PersistenceError):
    """Could not connect to storage backend."""
    pass
