"""
Storage Services Package

Provides the abstract ledger interface and its two backends: a
per-device snapshot and a shared remote table (Google Sheets).
"""

from shop_ledger.services.storage.interface import (
    ConnectionError,
    LedgerStorageInterface,
    PartitionIntegrityError,
    PersistenceError,
)
from shop_ledger.services.storage.snapshot_file import SnapshotFile
from shop_ledger.services.storage.local_snapshot import LocalSnapshotStorage
from shop_ledger.services.storage.remote import (
    TRANSACTIONS_TABLE,
    RemoteLedgerStorage,
    RemoteTable,
)
from shop_ledger.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsTable,
)

__all__ = [
    # Interfaces
    "LedgerStorageInterface",
    "RemoteTable",
    # Exceptions
    "ConnectionError",
    "PartitionIntegrityError",
    "PersistenceError",
    # Local snapshot implementation
    "LocalSnapshotStorage",
    "SnapshotFile",
    # Remote implementation
    "TRANSACTIONS_TABLE",
    "RemoteLedgerStorage",
    "GoogleSheetsClient",
    "GoogleSheetsTable",
]
