# ============================================================================
# src/bloodwork_ingestion/core/__init__.py
# ============================================================================
"""
Core components for blood-test ingestion.

Import the concrete modules directly (core.ingestion_service,
core.upload_orchestrator, ...); this package only re-exports the data
model so that extractors and processors can depend on it.
"""

from .context import (
    ResultStatus,
    UploadStatus,
    GuardState,
    RawExtractionRecord,
    NormalizedLabResult,
    ProcessedFileMarker,
    SelectedFile,
    UploadTask,
)
