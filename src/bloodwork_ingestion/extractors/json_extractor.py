# ============================================================================
# src/bloodwork_ingestion/extractors/json_extractor.py
# ============================================================================
"""
Tolerant JSON Extractor

Models wrap their JSON in prose ("Here are the results: [...] Hope this
helps!") no matter how firmly they are told not to. This module recovers
the array without ever raising on malformed input:

1. Strip markdown code fences.
2. Strict parse of the whole reply; accept it if it is an array.
3. Slice from the first "[" to the last "]" and strict parse the slice.
4. Optionally, run json_repair over the slice (off by default).

Failures come back as values (NoJsonFoundError / JsonParseError inside a
ParseOutcome), not as raised exceptions.

Bracket scanning is a heuristic: prose that itself contains brackets can
bound the wrong span. That trade-off is accepted.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional

from json_repair import repair_json

from ..core.context.lab_result import RawExtractionRecord
from ..utils.exceptions import JsonExtractionError, JsonParseError, NoJsonFoundError

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)

# Longest fragment kept on a JsonParseError
FRAGMENT_LIMIT = 2000


@dataclass
class ParseOutcome:
    """Either parsed records or a typed failure, never both."""
    records: List[RawExtractionRecord] = field(default_factory=list)
    error: Optional[JsonExtractionError] = None
    repaired: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class TolerantJsonExtractor:
    """
    Recover an array of RawExtractionRecord from free model text.

    Args:
        repair: Try json_repair on a bracket slice that fails strict parsing
    """

    def __init__(self, repair: bool = False):
        self.repair = repair

    def extract(self, text: Optional[str], page_index: Optional[int] = None) -> ParseOutcome:
        """Parse one page's reply. Never raises."""
        items, error, repaired = self._parse_array(text or "")
        if error is not None:
            return ParseOutcome(error=error)

        records = []
        for item in items:
            if not isinstance(item, dict):
                logger.debug(f"Skipping non-object array element on page {page_index}: {item!r}")
                continue
            records.append(RawExtractionRecord.from_dict(item, source_page=page_index))
        return ParseOutcome(records=records, repaired=repaired)

    def _parse_array(self, text: str):
        cleaned = _CODE_FENCE.sub("", text).strip()

        # Try 1: the whole reply is the array
        try:
            parsed = json.loads(cleaned)
            if isinstance(parsed, list):
                return parsed, None, False
        except (ValueError, RecursionError):
            pass

        # Try 2: bracket scan
        start = cleaned.find("[")
        end = cleaned.rfind("]")
        if start == -1 or end == -1 or end < start:
            return [], NoJsonFoundError("No valid JSON array found in response", raw_text=text), False

        fragment = cleaned[start:end + 1]
        try:
            parsed = json.loads(fragment)
        except (ValueError, RecursionError) as e:
            parse_error = e
        else:
            if isinstance(parsed, list):
                return parsed, None, False
            parse_error = ValueError(f"expected a JSON array, got {type(parsed).__name__}")

        # Try 3: json_repair on the slice
        if self.repair:
            repaired = self._repair(fragment)
            if repaired is not None:
                logger.warning(
                    f"json_repair fixed model response - potential data loss. "
                    f"Original (first 200 chars): {fragment[:200]}"
                )
                return repaired, None, True

        return [], JsonParseError(
            f"Failed to parse JSON array: {parse_error}",
            raw_text=text,
            fragment=fragment[:FRAGMENT_LIMIT],
        ), False

    @staticmethod
    def _repair(fragment: str) -> Optional[List[Any]]:
        try:
            repaired = repair_json(fragment, return_objects=True)
        except Exception as e:
            logger.debug(f"json_repair failed: {e}")
            return None
        if isinstance(repaired, list):
            return repaired
        return None


def extract_records(text: Optional[str], repair: bool = False) -> ParseOutcome:
    """Convenience wrapper around TolerantJsonExtractor."""
    return TolerantJsonExtractor(repair=repair).extract(text)
