# ============================================================================
# src/bloodwork_ingestion/utils/exceptions.py
# ============================================================================
"""
Custom exceptions for blood-test ingestion.
"""

from typing import Optional, Sequence


class BloodworkIngestionError(Exception):
    """Base exception for all ingestion errors."""

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ConfigurationError(BloodworkIngestionError):
    """Invalid or missing configuration."""
    pass


class InvalidDocumentError(BloodworkIngestionError):
    """Upload rejected before any processing (empty, wrong size, not a PDF)."""
    pass


class RasterizationError(BloodworkIngestionError):
    """The PDF could not be converted into any page images."""
    pass


class ExtractionError(BloodworkIngestionError):
    """
    The vision model call failed.

    Raised per page with ``page_index`` set, or once per document when every
    page failed, in which case ``failures`` holds the per-page errors.
    """

    def __init__(
        self,
        message: str,
        page_index: Optional[int] = None,
        failures: Sequence["ExtractionError"] = (),
        details: Optional[str] = None,
    ):
        super().__init__(message, details)
        self.page_index = page_index
        self.failures = tuple(failures)


class NoResultsExtractedError(BloodworkIngestionError):
    """The pipeline completed but produced no usable lab results."""
    pass


class JsonExtractionError(BloodworkIngestionError):
    """A model response could not be turned into records."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class NoJsonFoundError(JsonExtractionError):
    """The response contains no ``[ ... ]`` span."""
    pass


class JsonParseError(JsonExtractionError):
    """The bracketed span is not valid JSON."""

    def __init__(self, message: str, raw_text: str = "", fragment: str = ""):
        super().__init__(message, raw_text)
        self.fragment = fragment


class DuplicateDocumentError(BloodworkIngestionError):
    """This owner already has persisted results for a byte-identical file."""

    def __init__(self, file_hash: str, owner_id: str):
        super().__init__(
            "This PDF has already been processed and results exist",
            details=f"sha256={file_hash}",
        )
        self.file_hash = file_hash
        self.owner_id = owner_id


class PersistenceError(BloodworkIngestionError):
    """Normalized results could not be written."""
    pass


class StorageError(BloodworkIngestionError):
    """The original file could not be written to the object store."""
    pass


class NotFoundError(BloodworkIngestionError):
    """The requested result does not exist for this owner."""
    pass
