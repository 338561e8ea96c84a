# ============================================================================
# src/bloodwork_ingestion/core/context/enums.py
# ============================================================================
"""
Ingestion Enums
- Lab result status
- Upload task status
- Duplicate guard state
"""

from enum import Enum


class ResultStatus(str, Enum):
    NORMAL = "normal"
    HIGH = "high"
    LOW = "low"


class UploadStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"
    DUPLICATE = "duplicate"

    @property
    def is_terminal(self) -> bool:
        return self in (UploadStatus.SUCCESS, UploadStatus.ERROR, UploadStatus.DUPLICATE)


class GuardState(str, Enum):
    UNSEEN = "unseen"
    COMPLETED = "completed"
    ORPHANED = "orphaned"
