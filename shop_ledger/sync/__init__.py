"""Cross-device transfer package."""

from shop_ledger.sync.transfer import (
    DecodingError,
    EncodingError,
    PayloadValidationError,
    TransferError,
    backup_filename,
    decode_transfer_code,
    encode_transfer_code,
    export_file_text,
    parse_transfer_file,
    restamp,
    serialize_transactions,
)
from shop_ledger.sync.importer import (
    ImportSource,
    LedgerImporter,
    PendingImport,
)

__all__ = [
    # Codec
    "backup_filename",
    "decode_transfer_code",
    "encode_transfer_code",
    "export_file_text",
    "parse_transfer_file",
    "restamp",
    "serialize_transactions",
    # Errors
    "DecodingError",
    "EncodingError",
    "PayloadValidationError",
    "TransferError",
    # Import staging
    "ImportSource",
    "LedgerImporter",
    "PendingImport",
]
