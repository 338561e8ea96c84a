# ============================================================================
# FILE: tests/unit/test_normalizer.py
# ============================================================================
"""
Unit tests for the result normalizer
"""

import pytest

from bloodwork_ingestion.core.context.enums import ResultStatus
from bloodwork_ingestion.core.context.lab_result import RawExtractionRecord
from bloodwork_ingestion.processors.lab.catalog import TestCatalog
from bloodwork_ingestion.processors.lab.normalizer import ResultNormalizer

FILE_HASH = "a" * 64
OWNER = "user-1"


def raw(test="HDL", value="52", reference_range="40-60", status="normal",
        date="2023-03-15", unit="mg/dL", category="Lipids", page=0):
    return RawExtractionRecord(
        test=test,
        category=category,
        value=value,
        unit=unit,
        reference_range=reference_range,
        status=status,
        date=date,
        source_page=page,
    )


@pytest.fixture
def normalizer():
    return ResultNormalizer(catalog=None)


@pytest.fixture(scope="module")
def catalog():
    return TestCatalog.from_csv()


def test_unparseable_value_dropped(normalizer):
    records = [
        raw(test="HDL", value="52"),
        raw(test="LDL", value="not-a-number"),
        raw(test="Triglycerides", value="1.4"),
    ]
    results = normalizer.normalize(records, FILE_HASH, OWNER)

    assert len(results) == 2
    assert [r.test_name for r in results] == ["HDL", "Triglycerides"]
    assert all(isinstance(r.result_value, float) for r in results)


def test_record_without_name_dropped(normalizer):
    results = normalizer.normalize([raw(test="  "), raw()], FILE_HASH, OWNER)
    assert len(results) == 1


@pytest.mark.parametrize("reference_range, expected_min, expected_max", [
    ("> 10", 10.0, None),
    ("< 5", None, 5.0),
    ("10-20", 10.0, 20.0),
    ("", None, None),
])
def test_reference_bounds(normalizer, reference_range, expected_min, expected_max):
    result = normalizer.normalize([raw(reference_range=reference_range)], FILE_HASH, OWNER)[0]
    assert result.reference_min == expected_min
    assert result.reference_max == expected_max


def test_hash_and_owner_attached(normalizer):
    results = normalizer.normalize(
        [raw(test="HDL"), raw(test="LDL", value="2.9")],
        FILE_HASH,
        OWNER,
        source_file_name="report.pdf",
    )
    for result in results:
        assert result.source_file_hash == FILE_HASH
        assert result.owner_id == OWNER
        assert result.source_file_name == "report.pdf"
        assert result.processed_by_ai is True


# ============================================================================
# STATUS
# ============================================================================

def test_status_recomputed_from_both_bounds(normalizer):
    result = normalizer.normalize(
        [raw(value="75", reference_range="40-60", status="normal")], FILE_HASH, OWNER
    )[0]
    assert result.status is ResultStatus.HIGH


def test_model_status_used_with_single_bound(normalizer):
    result = normalizer.normalize(
        [raw(value="3", reference_range="< 5", status="high")], FILE_HASH, OWNER
    )[0]
    assert result.status is ResultStatus.HIGH


def test_single_bound_computes_without_model_status(normalizer):
    result = normalizer.normalize(
        [raw(value="6", reference_range="< 5", status="")], FILE_HASH, OWNER
    )[0]
    assert result.status is ResultStatus.HIGH


def test_status_defaults_to_normal(normalizer):
    result = normalizer.normalize(
        [raw(reference_range="N/A", status="unclear")], FILE_HASH, OWNER
    )[0]
    assert result.status is ResultStatus.NORMAL


# ============================================================================
# DATES
# ============================================================================

def test_dates_normalized(normalizer):
    result = normalizer.normalize([raw(date="02 Sep 2022")], FILE_HASH, OWNER)[0]
    assert result.test_date == "2022-09-02"


def test_unparseable_date_kept(normalizer):
    result = normalizer.normalize([raw(date="see report")], FILE_HASH, OWNER)[0]
    assert result.test_date == "see report"


def test_missing_date_uses_document_date(normalizer):
    results = normalizer.normalize(
        [raw(test="HDL", date=""), raw(test="LDL", value="2.9", date="15/03/2023")],
        FILE_HASH,
        OWNER,
    )
    assert [r.test_date for r in results] == ["2023-03-15", "2023-03-15"]


def test_month_first_option():
    normalizer = ResultNormalizer(day_first=False)
    result = normalizer.normalize([raw(date="3/4/2023")], FILE_HASH, OWNER)[0]
    assert result.test_date == "2023-03-04"


# ============================================================================
# DE-DUPLICATION
# ============================================================================

def test_repeated_records_kept_once(normalizer):
    records = [raw(page=0), raw(page=1), raw(test="hdl", page=2), raw(value="53", page=2)]
    results = normalizer.normalize(records, FILE_HASH, OWNER)

    assert len(results) == 2
    assert [r.result_value for r in results] == [52.0, 53.0]


def test_dedupe_can_be_disabled():
    results = ResultNormalizer(dedupe=False).normalize([raw(), raw()], FILE_HASH, OWNER)
    assert len(results) == 2


# ============================================================================
# CATALOG STANDARDIZATION
# ============================================================================

def test_catalog_standardizes_name(catalog):
    normalizer = ResultNormalizer(catalog=catalog)
    result = normalizer.normalize(
        [raw(test="ALT", value="35", unit="U/L", reference_range="0-45", category="LFT")],
        FILE_HASH,
        OWNER,
    )[0]

    assert result.test_name == "Alanine Aminotransferase"
    assert result.original_test_name == "ALT"
    assert result.category == "Liver Function"
    assert result.standardized is True
    assert result.confidence_score == 75
    assert result.description
    # Report bounds win
    assert (result.reference_min, result.reference_max) == (0.0, 45.0)


def test_catalog_fills_missing_bounds_and_unit(catalog):
    normalizer = ResultNormalizer(catalog=catalog)
    result = normalizer.normalize(
        [raw(test="Ferritin", value="20", unit="", reference_range="", status="")],
        FILE_HASH,
        OWNER,
    )[0]

    assert result.unit == "ug/L"
    assert (result.reference_min, result.reference_max) == (30.0, 400.0)
    assert result.status is ResultStatus.LOW


def test_catalog_below_threshold_keeps_report_name(catalog):
    normalizer = ResultNormalizer(catalog=catalog, match_threshold=80)
    result = normalizer.normalize([raw(test="ALT", value="35")], FILE_HASH, OWNER)[0]

    assert result.test_name == "ALT"
    assert result.standardized is False
    assert result.confidence_score == 0


def test_unknown_test_keeps_report_fields(catalog):
    normalizer = ResultNormalizer(catalog=catalog)
    result = normalizer.normalize(
        [raw(test="Zinc protoporphyrin", value="40", category="")], FILE_HASH, OWNER
    )[0]

    assert result.test_name == "Zinc protoporphyrin"
    assert result.category == "Other"
    assert result.standardized is False


def test_to_dict_uses_camel_case(normalizer):
    data = normalizer.normalize([raw()], FILE_HASH, OWNER)[0].to_dict()
    assert data["testName"] == "HDL"
    assert data["resultValue"] == 52.0
    assert data["referenceMin"] == 40.0
    assert data["status"] == "normal"
    assert data["sourceFileHash"] == FILE_HASH
    assert data["ownerId"] == OWNER


def test_catalog_bounds_skipped_for_other_units(catalog):
    # Catalog glucose is mmol/L; 95 mg/dL must not be read against 3.9-5.6
    normalizer = ResultNormalizer(catalog=catalog)
    result = normalizer.normalize(
        [raw(test="Glucose", value="95", unit="mg/dL", reference_range="", status="normal")],
        FILE_HASH,
        OWNER,
    )[0]

    assert result.test_name == "Glucose"
    assert result.unit == "mg/dL"
    assert (result.reference_min, result.reference_max) == (None, None)
    assert result.status is ResultStatus.NORMAL


def test_catalog_bounds_applied_for_matching_units(catalog):
    normalizer = ResultNormalizer(catalog=catalog)
    result = normalizer.normalize(
        [raw(test="Glucose", value="6.5", unit="MMOL/L", reference_range="", status="")],
        FILE_HASH,
        OWNER,
    )[0]

    assert (result.reference_min, result.reference_max) == (3.9, 5.6)
    assert result.status is ResultStatus.HIGH


def test_micro_sign_units_match_catalog(catalog):
    normalizer = ResultNormalizer(catalog=catalog)
    result = normalizer.normalize(
        [raw(test="Ferritin", value="500", unit="µg/L", reference_range="", status="")],
        FILE_HASH,
        OWNER,
    )[0]

    assert result.reference_max == 400.0
    assert result.status is ResultStatus.HIGH


def test_qualified_name_not_read_against_base_test(catalog):
    normalizer = ResultNormalizer(catalog=catalog)
    results = normalizer.normalize(
        [
            raw(test="Testosterone, Free", value="0.4", unit="nmol/L", reference_range="", status=""),
            raw(test="Haemoglobin A1c", value="5.6", unit="%", reference_range="", status="normal"),
            raw(test="Non-HDL Cholesterol", value="3.1", unit="mmol/L", reference_range="", status="normal"),
        ],
        FILE_HASH,
        OWNER,
    )
    free_t, a1c, non_hdl = results

    assert free_t.test_name == "Free Testosterone"
    assert free_t.status is ResultStatus.NORMAL

    assert a1c.test_name == "HbA1c"
    assert a1c.reference_min is None
    assert a1c.status is ResultStatus.NORMAL

    assert non_hdl.test_name == "Non-HDL Cholesterol"
    assert non_hdl.standardized is False
    assert non_hdl.reference_min is None
