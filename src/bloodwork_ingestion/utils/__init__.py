"""
Utility modules for blood-test ingestion.
"""

from .exceptions import (
    BloodworkIngestionError,
    ConfigurationError,
    InvalidDocumentError,
    RasterizationError,
    ExtractionError,
    NoResultsExtractedError,
    JsonExtractionError,
    NoJsonFoundError,
    JsonParseError,
    DuplicateDocumentError,
    PersistenceError,
    StorageError,
)

from .logging import (
    setup_logging,
    JsonFormatter,
    log_performance,
)

from .file_utils import (
    compute_content_hash,
    validate_pdf_bytes,
    sanitize_filename,
)
