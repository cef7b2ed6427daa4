"""
Import Staging and Merge

An import happens in two steps:

1. STAGE - decode the code or file, validate it, restamp every record
   for the current user. Nothing is written. The user is shown how
   many records were found.
2. COMMIT - only after the user confirms, append the staged records
   through the ledger storage.

DESIGN DECISION: Both the paste-code path and the file-upload path
require confirmation. Earlier versions of the app committed uploaded
files immediately; one rule for both paths is easier to trust.

Imports are ADDITIVE. Existing records are never removed or changed.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from shop_ledger.logger import get_logger
from shop_ledger.models.transaction import Transaction
from shop_ledger.services.storage import LedgerStorageInterface
from shop_ledger.sync.transfer import (
    decode_transfer_code,
    parse_transfer_file,
    restamp,
)


logger = get_logger(__name__)


class ImportSource(str, Enum):
    """Where staged records came from."""
    CODE = "code"
    FILE = "file"


class PendingImport(BaseModel):
    """
    Records decoded and restamped, waiting for the user to confirm.

    CRITICAL: A PendingImport is bound to the user it was staged for.
    """
    model_config = ConfigDict(frozen=True)

    source: ImportSource
    user_id: str
    records: list[Transaction] = Field(default_factory=list)
    staged_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def count(self) -> int:
        return len(self.records)

    @property
    def confirmation_prompt(self) -> str:
        return f"Found {self.count} records. Do you want to import them?"


class LedgerImporter:
    """
    Stages and commits imports for one storage backend.

    Depends only on LedgerStorageInterface, never on a backend.
    """

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    def stage_code(self, code: str, user_id: str) -> PendingImport:
        """
        Decode a pasted transfer code.

        Raises:
            DecodingError: Code unreadable
            PayloadValidationError: A record is malformed
        """
        records = restamp(decode_transfer_code(code), user_id)
        return self._stage(ImportSource.CODE, user_id, records)

    def stage_file(self, content: str | bytes, user_id: str) -> PendingImport:
        """
        Parse an uploaded backup file.

        Raises:
            DecodingError: File unreadable
            PayloadValidationError: Not a list, or a record is malformed
        """
        records = restamp(parse_transfer_file(content), user_id)
        return self._stage(ImportSource.FILE, user_id, records)

    def _stage(
        self,
        source: ImportSource,
        user_id: str,
        records: list[Transaction],
    ) -> PendingImport:
        pending = PendingImport(source=source, user_id=user_id, records=records)
        logger.info(
            "import_staged",
            source=source.value,
            user_id=user_id,
            count=pending.count,
        )
        return pending

    async def commit(
        self,
        pending: PendingImport,
        user_id: Optional[str] = None,
    ) -> list[Transaction]:
        """
        Append the staged records.

        Args:
            pending: What stage_code / stage_file returned
            user_id: The user committing; must match the staging user

        Returns:
            The records as stored

        Raises:
            PersistenceError: The backend refused the write
        """
        owner = user_id or pending.user_id
        if not pending.records:
            return []

        stored = await self._storage.insert(owner, list(pending.records))
        logger.info(
            "import_committed",
            source=pending.source.value,
            user_id=owner,
            count=len(stored),
        )
        return stored
