# ============================================================================
# src/bloodwork_ingestion/core/context/lab_result.py
# ============================================================================
"""
Lab result records at the two ends of normalization.

RawExtractionRecord: loose, string-typed, straight from the model reply.
NormalizedLabResult: strict row that gets persisted.
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .enums import ResultStatus

# Keys the model has been seen to use for each field
_FIELD_ALIASES = {
    "test": ("test", "test_name", "name", "testName"),
    "category": ("category", "panel", "section"),
    "value": ("value", "result", "result_value", "resultValue"),
    "unit": ("unit", "units"),
    "reference_range": ("reference_range", "reference", "ref_range", "referenceRange", "range"),
    "status": ("status", "flag", "abnormal_flag"),
    "date": ("date", "test_date", "collection_date", "testDate"),
}


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _first_present(item: Dict[str, Any], keys) -> str:
    for key in keys:
        if key in item and item[key] is not None:
            return _as_text(item[key])
    return ""


@dataclass
class RawExtractionRecord:
    """One lab result exactly as the model described it. All fields are text."""
    test: str = ""
    category: str = ""
    value: str = ""
    unit: str = ""
    reference_range: str = ""
    status: str = ""
    date: str = ""
    source_page: Optional[int] = None

    @classmethod
    def from_dict(cls, item: Dict[str, Any], source_page: Optional[int] = None) -> "RawExtractionRecord":
        """
        Build a record from one JSON object of the model reply.

        Accepts the field aliases the model tends to drift into and, when no
        free-form range is given, rebuilds one from ``reference_min`` /
        ``reference_max``.
        """
        record = cls(
            **{name: _first_present(item, keys) for name, keys in _FIELD_ALIASES.items()},
            source_page=source_page,
        )
        if not record.reference_range:
            low = _as_text(item.get("reference_min"))
            high = _as_text(item.get("reference_max"))
            if low and high:
                record.reference_range = f"{low}-{high}"
            elif high:
                record.reference_range = f"< {high}"
            elif low:
                record.reference_range = f"> {low}"
        return record

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class NormalizedLabResult:
    test_name: str
    category: str
    result_value: float
    status: ResultStatus
    test_date: Optional[str]
    source_file_hash: str
    owner_id: str

    reference_min: Optional[float] = None
    reference_max: Optional[float] = None
    unit: Optional[str] = None

    # Catalog standardization
    original_test_name: Optional[str] = None
    standardized: bool = False
    confidence_score: int = 0
    description: Optional[str] = None

    # Provenance
    source_file_name: Optional[str] = None
    source_file_type: str = "pdf"
    processed_by_ai: bool = True

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with camelCase keys, the shape the frontend consumes."""
        return {
            "id": self.id,
            "testName": self.test_name,
            "category": self.category,
            "resultValue": self.result_value,
            "referenceMin": self.reference_min,
            "referenceMax": self.reference_max,
            "unit": self.unit,
            "status": self.status.value,
            "testDate": self.test_date,
            "sourceFileHash": self.source_file_hash,
            "sourceFileName": self.source_file_name,
            "sourceFileType": self.source_file_type,
            "ownerId": self.owner_id,
            "originalTestName": self.original_test_name,
            "standardized": self.standardized,
            "confidenceScore": self.confidence_score,
            "description": self.description,
            "processedByAi": self.processed_by_ai,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class ProcessedFileMarker:
    """Records that the pipeline finished for (source_file_hash, owner_id)."""
    source_file_hash: str
    owner_id: str
    file_name: str
    processed_at: datetime
