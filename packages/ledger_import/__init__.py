"""Public interface for the ``ledger_import`` package.

Re-exports the engine entry points and the record model as the stable import
surface. There is no runtime logic here, only symbol re-exports.
"""

from .api import LedgerImporter, import_batch, import_file
from .config import BusinessUnit, CardFeeRule, EngineConfig, default_config, load_config
from .detect import detect_format
from .duplicates import (
    bank_dedup_key,
    extract_external_code,
    lab_dedup_key,
    mark_duplicates,
    payer_dedup_key,
)
from .errors import (
    CorruptArchiveError,
    EntryParseError,
    LedgerImportError,
    OcrUnavailableError,
    UnreadableDocumentError,
    UnreadableSpreadsheetError,
    UnrecognizedFormatError,
)
from .matching import EntityMatcher, MatchResult
from .models import (
    Category,
    Counterparty,
    Direction,
    DiscountLevel,
    FileFormat,
    FileImportOutcome,
    ImportBatchResult,
    LedgerImportRow,
    NormalizedRecord,
    PayerReportFile,
    PayerReportRow,
    PaymentMethod,
    Registry,
    SkippedEntry,
    ValueDivergence,
)
from .normalizers import normalize_amount, normalize_date

__all__ = [
    # Engine
    "LedgerImporter",
    "import_batch",
    "import_file",
    "detect_format",
    "mark_duplicates",
    "EntityMatcher",
    "MatchResult",
    # Keys
    "bank_dedup_key",
    "extract_external_code",
    "lab_dedup_key",
    "payer_dedup_key",
    # Config
    "BusinessUnit",
    "CardFeeRule",
    "EngineConfig",
    "default_config",
    "load_config",
    # Normalizers
    "normalize_amount",
    "normalize_date",
    # Models
    "Category",
    "Counterparty",
    "Direction",
    "DiscountLevel",
    "FileFormat",
    "FileImportOutcome",
    "ImportBatchResult",
    "LedgerImportRow",
    "NormalizedRecord",
    "PayerReportFile",
    "PayerReportRow",
    "PaymentMethod",
    "Registry",
    "SkippedEntry",
    "ValueDivergence",
    # Errors
    "CorruptArchiveError",
    "EntryParseError",
    "LedgerImportError",
    "OcrUnavailableError",
    "UnreadableDocumentError",
    "UnreadableSpreadsheetError",
    "UnrecognizedFormatError",
]
