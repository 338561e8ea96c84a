from .catalog import CatalogEntry, CatalogMatch, TestCatalog, DEFAULT_CATALOG_PATH
from .normalizer import ResultNormalizer
from .parsing import (
    parse_numeric_value,
    parse_reference_range,
    normalize_status,
    compute_status,
    normalize_date,
    normalize_unit,
)
