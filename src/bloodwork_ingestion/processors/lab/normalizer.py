# ============================================================================
# src/bloodwork_ingestion/processors/lab/normalizer.py
# ============================================================================
"""
Result Normalizer

Converts the string-typed RawExtractionRecords of one document into
NormalizedLabResults:

- value parsed as a finite float; records that fail are dropped, the
  rest of the batch is kept
- free-form reference range split into independent optional bounds
- status recomputed from the bounds where both exist; the model's
  status is only a fallback
- dates converted to YYYY-MM-DD; an unparseable date is kept verbatim
- source hash and owner attached to every record
- optional test-name standardization against the TestCatalog
- optional de-duplication of records repeated across pages
"""

import logging
from typing import Iterable, List, Optional

from ...core.context.enums import ResultStatus
from ...core.context.lab_result import NormalizedLabResult, RawExtractionRecord
from .catalog import TestCatalog
from .parsing import (
    compute_status,
    normalize_date,
    normalize_status,
    normalize_unit,
    parse_numeric_value,
    parse_reference_range,
)

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "Other"


class ResultNormalizer:
    """
    Raw records in, persistable records out.

    Args:
        catalog: Known tests for name standardization (None disables it)
        match_threshold: Minimum catalog confidence to standardize a name
        day_first: Read ambiguous numeric dates as day/month/year
        dedupe: Keep only the first of records repeated within a document
    """

    def __init__(
        self,
        catalog: Optional[TestCatalog] = None,
        match_threshold: int = 70,
        day_first: bool = True,
        dedupe: bool = True,
    ):
        self.catalog = catalog
        self.match_threshold = match_threshold
        self.day_first = day_first
        self.dedupe = dedupe

    def normalize(
        self,
        raw_records: Iterable[RawExtractionRecord],
        source_file_hash: str,
        owner_id: str,
        source_file_name: Optional[str] = None,
    ) -> List[NormalizedLabResult]:
        raw_records = list(raw_records)
        document_date = self._document_date(raw_records)

        results = []
        seen = set()
        dropped = 0
        duplicates = 0

        for raw in raw_records:
            result = self._normalize_one(
                raw, source_file_hash, owner_id, source_file_name, document_date
            )
            if result is None:
                dropped += 1
                continue

            if self.dedupe:
                key = (
                    result.test_name.lower(),
                    result.result_value,
                    (result.unit or "").lower(),
                    result.test_date,
                )
                if key in seen:
                    duplicates += 1
                    continue
                seen.add(key)

            results.append(result)

        if dropped:
            logger.info(f"Dropped {dropped} record(s) without a test name or numeric value")
        if duplicates:
            logger.info(f"Dropped {duplicates} duplicate record(s) repeated across pages")
        logger.info(f"Normalized {len(results)}/{len(raw_records)} record(s) for {source_file_hash[:12]}")
        return results

    def _document_date(self, raw_records: List[RawExtractionRecord]) -> Optional[str]:
        """First parseable date in page order, used for records that have none."""
        for raw in raw_records:
            parsed = normalize_date(raw.date, day_first=self.day_first)
            if parsed:
                return parsed
        return None

    def _normalize_one(
        self,
        raw: RawExtractionRecord,
        source_file_hash: str,
        owner_id: str,
        source_file_name: Optional[str],
        document_date: Optional[str],
    ) -> Optional[NormalizedLabResult]:
        name = raw.test.strip()
        if not name:
            return None

        value = parse_numeric_value(raw.value)
        if value is None:
            logger.debug(f"Dropping '{name}': value {raw.value!r} is not a number")
            return None

        reference_min, reference_max = parse_reference_range(raw.reference_range)

        result = NormalizedLabResult(
            test_name=name,
            category=raw.category.strip() or DEFAULT_CATEGORY,
            result_value=value,
            status=ResultStatus.NORMAL,
            test_date=self._test_date(raw.date, document_date),
            source_file_hash=source_file_hash,
            owner_id=owner_id,
            reference_min=reference_min,
            reference_max=reference_max,
            unit=raw.unit.strip() or None,
            original_test_name=name,
            source_file_name=source_file_name,
        )

        self._standardize(result)
        result.status = self._status(value, result.reference_min, result.reference_max, raw.status)
        return result

    def _test_date(self, date_str: str, document_date: Optional[str]) -> Optional[str]:
        if not date_str:
            return document_date
        parsed = normalize_date(date_str, day_first=self.day_first)
        if parsed is None:
            logger.debug(f"Keeping unparseable date {date_str!r} as-is")
            return date_str.strip()
        return parsed

    def _standardize(self, result: NormalizedLabResult) -> None:
        if self.catalog is None:
            return

        match = self.catalog.find_best_match(result.test_name)
        if match is None or match.confidence < self.match_threshold:
            return

        entry = match.entry
        logger.debug(
            f"Standardized '{result.test_name}' -> '{entry.test_name}' "
            f"({match.match_type}, {match.confidence})"
        )
        result.test_name = entry.test_name
        result.category = entry.category or result.category
        result.description = entry.description or None
        result.standardized = True
        result.confidence_score = match.confidence

        # Catalog bounds are in the catalog's units; a report in other units
        # (mg/dL glucose vs mmol/L) keeps no bounds and falls back to its flag
        same_units = result.unit is None or normalize_unit(result.unit) == normalize_unit(entry.units)

        if result.unit is None and entry.units:
            result.unit = entry.units

        # Bounds printed on the report win over catalog defaults
        if result.reference_min is None and result.reference_max is None:
            if same_units:
                result.reference_min = entry.reference_min
                result.reference_max = entry.reference_max
            else:
                logger.debug(
                    f"Not applying catalog range for '{entry.test_name}': "
                    f"report unit {result.unit!r}, catalog unit {entry.units!r}"
                )

    @staticmethod
    def _status(
        value: float,
        reference_min: Optional[float],
        reference_max: Optional[float],
        model_status: str,
    ) -> ResultStatus:
        if reference_min is not None and reference_max is not None:
            return compute_status(value, reference_min, reference_max)

        stated = normalize_status(model_status)
        if stated is not None:
            return stated

        return compute_status(value, reference_min, reference_max) or ResultStatus.NORMAL
