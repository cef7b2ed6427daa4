"""Services package."""

from shop_ledger.services.auth import (
    AccountExistsError,
    AuthError,
    AuthProviderInterface,
    InvalidCredentialsError,
    LocalAuthProvider,
)
from shop_ledger.services.storage import (
    ConnectionError,
    GoogleSheetsClient,
    GoogleSheetsTable,
    LedgerStorageInterface,
    LocalSnapshotStorage,
    PartitionIntegrityError,
    PersistenceError,
    RemoteLedgerStorage,
    RemoteTable,
    SnapshotFile,
)

__all__ = [
    # Auth services
    "AccountExistsError",
    "AuthError",
    "AuthProviderInterface",
    "InvalidCredentialsError",
    "LocalAuthProvider",
    # Storage services
    "ConnectionError",
    "GoogleSheetsClient",
    "GoogleSheetsTable",
    "LedgerStorageInterface",
    "LocalSnapshotStorage",
    "PartitionIntegrityError",
    "PersistenceError",
    "RemoteLedgerStorage",
    "RemoteTable",
    "SnapshotFile",
]
