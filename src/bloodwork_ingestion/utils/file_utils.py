# ============================================================================
# src/bloodwork_ingestion/utils/file_utils.py
# ============================================================================
"""
File helpers: content hashing, upload validation, filename sanitizing.
"""

import hashlib
import re
from pathlib import Path

from .exceptions import InvalidDocumentError

PDF_SIGNATURE = b"%PDF-"


def compute_content_hash(content: bytes) -> str:
    """
    SHA-256 hex digest of the file bytes.

    The digest depends only on the bytes, never on the filename or upload
    time, so a byte-identical re-upload always maps to the same value.
    """
    return hashlib.sha256(content).hexdigest()


def validate_pdf_bytes(content: bytes, min_size: int = 1024, max_size: int = 0) -> None:
    """
    Reject uploads that cannot be a usable lab report.

    Args:
        content: Raw upload bytes
        min_size: Smallest accepted size in bytes
        max_size: Largest accepted size in bytes (0 = unlimited)

    Raises:
        InvalidDocumentError
    """
    if not content:
        raise InvalidDocumentError("No file uploaded")
    if len(content) < min_size:
        raise InvalidDocumentError(
            "File is too small to be a valid PDF",
            details=f"{len(content)} bytes, minimum is {min_size}",
        )
    if max_size and len(content) > max_size:
        raise InvalidDocumentError(
            "File is too large",
            details=f"{len(content)} bytes, maximum is {max_size}",
        )
    # Some generators emit a BOM or whitespace before the header
    if PDF_SIGNATURE not in content[:1024]:
        raise InvalidDocumentError("File must be a PDF")


def sanitize_filename(filename: str) -> str:
    """
    Make a filename safe for use inside an object key.

    Keeps letters, digits, dot, dash and underscore; everything else
    becomes an underscore. Path components are stripped.
    """
    name = Path(filename.replace("\\", "/")).name
    name = re.sub(r"[^A-Za-z0-9._-]", "_", name)
    name = name.strip("._") or "upload.pdf"
    return name
