# ============================================================================
# src/bloodwork_ingestion/processors/lab/catalog.py
# ============================================================================
"""
Test Catalog

Known blood tests with standard names, categories, units, reference
bounds and synonyms, loaded from a CSV file. Used by the normalizer to
standardize the free-text test names a model reads off a report.

Matching levels (first hit wins):
- exact normalized name                          -> 100
- every word of a catalog name in the report's
  name, the rest neutral qualifiers (longest wins) -> 85
- synonym/abbreviation, or the name
  mentioned in the description                   -> 75
"""

import csv
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ...utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# catalog.py -> lab -> processors -> bloodwork_ingestion
DEFAULT_CATALOG_PATH = Path(__file__).parent.parent.parent / "knowledge" / "test_catalog.csv"

EXACT_MATCH = 100
CONTAINS_MATCH = 85
SYNONYM_MATCH = 75

# Names this short only match exactly or by synonym; "t" would otherwise
# be contained in half the catalog
_MIN_CONTAINMENT_LENGTH = 3

# Words a report may add around a catalog name without changing the test.
# "free", "non", "ratio", "a1c" and "binding" change the analyte and are not listed.
NEUTRAL_WORDS = frozenset({
    "serum", "plasma", "blood", "whole", "level", "levels", "concentration",
    "test", "result", "total", "fasting", "random", "s", "p",
})


def normalize_test_name(name: str) -> str:
    """Lowercase, unify punctuation and collapse whitespace."""
    name = (name or "").lower()
    name = re.sub(r"[^a-z0-9+%/ ]", " ", name)
    return re.sub(r"\s+", " ", name).strip()


def _optional_float(value: str) -> Optional[float]:
    value = (value or "").strip()
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class CatalogEntry:
    test_name: str
    category: str
    panel: str = ""
    description: str = ""
    reference_min: Optional[float] = None
    reference_max: Optional[float] = None
    units: str = ""
    synonyms: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class CatalogMatch:
    entry: CatalogEntry
    confidence: int
    match_type: str


class TestCatalog:
    """
    In-memory catalog of known tests.

    Args:
        entries: Catalog rows
    """

    __test__ = False  # not a pytest class

    def __init__(self, entries: List[CatalogEntry]):
        self.entries = list(entries)
        self._by_name: Dict[str, CatalogEntry] = {}
        self._by_synonym: Dict[str, CatalogEntry] = {}

        for entry in self.entries:
            self._by_name.setdefault(normalize_test_name(entry.test_name), entry)
            for synonym in entry.synonyms:
                self._by_synonym.setdefault(normalize_test_name(synonym), entry)

    def __len__(self) -> int:
        return len(self.entries)

    @classmethod
    def from_csv(cls, path: Optional[Path] = None) -> "TestCatalog":
        """
        Load a catalog CSV.

        Columns: test_name, category, panel, description, reference_min,
        reference_max, units, synonyms (semicolon separated).

        Raises:
            ConfigurationError: file missing or without a test_name column
        """
        path = Path(path) if path else DEFAULT_CATALOG_PATH
        if not path.exists():
            raise ConfigurationError(f"Test catalog not found: {path}")

        entries = []
        with open(path, newline="", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            if not reader.fieldnames or "test_name" not in reader.fieldnames:
                raise ConfigurationError(f"Test catalog has no test_name column: {path}")

            for row in reader:
                name = (row.get("test_name") or "").strip()
                if not name:
                    continue
                synonyms = tuple(
                    s.strip() for s in (row.get("synonyms") or "").split(";") if s.strip()
                )
                entries.append(CatalogEntry(
                    test_name=name,
                    category=(row.get("category") or "").strip(),
                    panel=(row.get("panel") or "").strip(),
                    description=(row.get("description") or "").strip(),
                    reference_min=_optional_float(row.get("reference_min")),
                    reference_max=_optional_float(row.get("reference_max")),
                    units=(row.get("units") or "").strip(),
                    synonyms=synonyms,
                ))

        logger.info(f"Loaded {len(entries)} catalog tests from {path}")
        return cls(entries)

    def find_best_match(self, test_name: str) -> Optional[CatalogMatch]:
        """Best catalog entry for a report's test name, or None."""
        query = normalize_test_name(test_name)
        if not query:
            return None

        exact = self._by_name.get(query)
        if exact is not None:
            return CatalogMatch(exact, EXACT_MATCH, "exact")

        contained = self._contained_entry(query)
        if contained is not None:
            return CatalogMatch(contained, CONTAINS_MATCH, "contains")

        synonym = self._by_synonym.get(query)
        if synonym is not None:
            return CatalogMatch(synonym, SYNONYM_MATCH, "synonym")

        if len(query) >= _MIN_CONTAINMENT_LENGTH:
            pattern = re.compile(rf"\b{re.escape(query)}\b")
            for entry in self.entries:
                if pattern.search(normalize_test_name(entry.description)):
                    return CatalogMatch(entry, SYNONYM_MATCH, "description")

        return None

    def _contained_entry(self, query: str) -> Optional[CatalogEntry]:
        """
        Catalog test whose name words all appear in the query.

        Any other query word must be a qualifier that leaves the analyte
        unchanged ("serum", "level", ...), so "Testosterone, Free" or
        "Haemoglobin A1c" never collapse onto "Testosterone" or
        "Haemoglobin". The longest such name wins.
        """
        if len(query) < _MIN_CONTAINMENT_LENGTH:
            return None

        query_words = set(query.split())
        best: Optional[Tuple[int, CatalogEntry]] = None
        for key, entry in self._by_name.items():
            key_words = set(key.split())
            if len(key) < _MIN_CONTAINMENT_LENGTH or not key_words <= query_words:
                continue
            if not (query_words - key_words) <= NEUTRAL_WORDS:
                continue
            if best is None or len(key) > best[0]:
                best = (len(key), entry)

        return best[1] if best else None
