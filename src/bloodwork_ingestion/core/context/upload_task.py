# ============================================================================
# src/bloodwork_ingestion/core/context/upload_task.py
# ============================================================================
"""
Upload task snapshots owned by an UploadSession.

Tasks are frozen; every state change produces a new snapshot.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .enums import UploadStatus


@dataclass(frozen=True)
class SelectedFile:
    """A file the user picked: name plus bytes."""
    name: str
    content: bytes = field(repr=False)
    content_type: str = "application/pdf"

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class UploadTask:
    file: SelectedFile
    status: UploadStatus = UploadStatus.PENDING
    error_message: Optional[str] = None
    uploaded_url: Optional[str] = None
    result_count: int = 0
    attempt: int = 1
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def name(self) -> str:
        return self.file.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "fileName": self.name,
            "size": self.file.size,
            "status": self.status.value,
            "errorMessage": self.error_message,
            "uploadedUrl": self.uploaded_url,
            "resultCount": self.result_count,
            "attempt": self.attempt,
        }
