"""
Cross-Device Transfer Codec

Two ways to move a ledger between devices by hand:

1. TRANSFER CODE - compact JSON, UTF-8 encoded, then base64. Pure
   ASCII, safe for the clipboard, and lossless for any script
   (Bengali descriptions included). Codes made by earlier versions
   of the app (btoa over UTF-8 bytes) decode the same way.

2. BACKUP FILE - the same JSON, pretty-printed, written as UTF-8.
   No base64 step; files are not copy-paste constrained.

IMPORTANT: Nothing decoded here is trusted. restamp() gives every
incoming record a fresh id and the importing user's id.
"""

import base64
import binascii
import json
from datetime import date
from decimal import Decimal
from typing import Any, Iterable

from pydantic import ValidationError

from shop_ledger.logger import get_logger
from shop_ledger.models.transaction import Transaction, new_transaction_id


logger = get_logger(__name__)

BACKUP_FILE_PREFIX = "ShopBackup_"
BACKUP_MIME_TYPE = "application/json"


class TransferError(Exception):
    """Base exception for transfer operations."""
    pass


class EncodingError(TransferError):
    """The ledger could not be turned into a code or file."""
    pass


class DecodingError(TransferError):
    """The pasted code or uploaded file could not be read."""
    pass


class PayloadValidationError(TransferError):
    """The payload was readable but is not a list of transactions."""
    pass


# =============================================================================
# ENCODING (export)
# =============================================================================

def serialize_transactions(
    transactions: Iterable[Transaction],
    pretty: bool = False,
) -> str:
    """
    Canonical JSON text of a collection.

    Field order is id, description, amount, type, category, date,
    userId. Non-ASCII text is written as-is.
    """
    records = [t.to_record() for t in transactions]
    if pretty:
        return json.dumps(records, ensure_ascii=False, indent=2)
    return json.dumps(records, ensure_ascii=False, separators=(",", ":"))


def encode_transfer_code(transactions: Iterable[Transaction]) -> str:
    """Encode a collection as an ASCII transfer code."""
    transactions = list(transactions)
    if not transactions:
        raise EncodingError("There is no data to copy.")

    try:
        text = serialize_transactions(transactions)
        code = base64.b64encode(text.encode("utf-8")).decode("ascii")
    except (TypeError, ValueError, UnicodeError) as e:
        logger.error("transfer_encode_failed", error=str(e))
        raise EncodingError("Could not create the code.") from e

    logger.info("transfer_code_encoded", count=len(transactions), length=len(code))
    return code


def export_file_text(transactions: Iterable[Transaction]) -> str:
    """Pretty-printed backup file contents."""
    transactions = list(transactions)
    if not transactions:
        raise EncodingError("There is no data to download.")
    return serialize_transactions(transactions, pretty=True)


def backup_filename(day: date) -> str:
    """ShopBackup_YYYY-MM-DD.json"""
    return f"{BACKUP_FILE_PREFIX}{day.isoformat()}.json"


# =============================================================================
# DECODING (import)
# =============================================================================

def _parse_collection(text: str) -> list[Any]:
    """Parse JSON text that must hold a list. Floats become Decimals."""
    try:
        decoded = json.loads(text, parse_float=Decimal)
    except json.JSONDecodeError as e:
        raise DecodingError("The data is not valid JSON.") from e

    if not isinstance(decoded, list):
        raise PayloadValidationError("The data is not a list of transactions.")
    return decoded


def decode_transfer_code(code: str) -> list[Any]:
    """
    Reverse encode_transfer_code.

    Any failure (bad base64, bad UTF-8, bad JSON, not a list) is
    reported as a single "invalid code" error.
    """
    cleaned = "".join((code or "").split())
    if not cleaned:
        raise DecodingError("Invalid code. Please copy the code again.")

    try:
        raw = base64.b64decode(cleaned, validate=True)
        text = raw.decode("utf-8")
        records = _parse_collection(text)
    except (binascii.Error, ValueError, TransferError) as e:
        logger.warning("transfer_decode_failed", error=str(e), length=len(cleaned))
        raise DecodingError("Invalid code. Please copy the code again.") from e

    logger.info("transfer_code_decoded", count=len(records))
    return records


def parse_transfer_file(content: str | bytes) -> list[Any]:
    """Parse an uploaded backup file (no base64 step)."""
    try:
        text = content.decode("utf-8-sig") if isinstance(content, bytes) else content
        records = _parse_collection(text)
    except UnicodeDecodeError as e:
        raise DecodingError("The file is not a UTF-8 .json backup.") from e
    except DecodingError as e:
        logger.warning("transfer_file_rejected", error=str(e))
        raise DecodingError("The file format is not valid. Upload a .json backup.") from e

    logger.info("transfer_file_parsed", count=len(records))
    return records


def restamp(records: list[Any], user_id: str) -> list[Transaction]:
    """
    Turn decoded records into Transactions owned by user_id.

    Incoming id and userId are discarded. One malformed record
    rejects the whole payload.
    """
    transactions = []
    for position, record in enumerate(records, start=1):
        if not isinstance(record, dict):
            raise PayloadValidationError(
                f"Entry {position} is not a transaction."
            )
        data = {k: v for k, v in record.items() if k not in ("id", "userId", "user_id")}
        data["id"] = new_transaction_id()
        data["userId"] = user_id
        try:
            transactions.append(Transaction.model_validate(data))
        except ValidationError as e:
            fields = ", ".join(
                str(err["loc"][0]) for err in e.errors() if err.get("loc")
            )
            raise PayloadValidationError(
                f"Entry {position} is not a valid transaction ({fields})."
            ) from e
    return transactions
