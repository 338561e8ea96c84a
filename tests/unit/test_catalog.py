# ============================================================================
# FILE: tests/unit/test_catalog.py
# ============================================================================
"""
Unit tests for the test catalog and name matching
"""

import pytest

from bloodwork_ingestion.processors.lab.catalog import (
    CONTAINS_MATCH,
    EXACT_MATCH,
    SYNONYM_MATCH,
    TestCatalog,
    normalize_test_name,
)
from bloodwork_ingestion.utils.exceptions import ConfigurationError


@pytest.fixture(scope="module")
def catalog():
    return TestCatalog.from_csv()


def test_bundled_catalog_loads(catalog):
    assert len(catalog) > 40
    names = {entry.test_name for entry in catalog.entries}
    assert {"Haemoglobin", "HDL Cholesterol", "Vitamin D", "Testosterone"} <= names


def test_open_ended_bounds_loaded_as_none(catalog):
    hdl = catalog.find_best_match("HDL Cholesterol").entry
    assert hdl.reference_min == 1.0
    assert hdl.reference_max is None


def test_normalize_test_name():
    assert normalize_test_name("  Vitamin-D (25-OH) ") == "vitamin d 25 oh"
    assert normalize_test_name("Free  T4") == "free t4"


def test_exact_match(catalog):
    match = catalog.find_best_match("total cholesterol")
    assert match.entry.test_name == "Total Cholesterol"
    assert match.confidence == EXACT_MATCH
    assert match.match_type == "exact"


def test_containment_match(catalog):
    match = catalog.find_best_match("Serum Creatinine Level")
    assert match.entry.test_name == "Creatinine"
    assert match.confidence == CONTAINS_MATCH


def test_synonym_match(catalog):
    match = catalog.find_best_match("ALT")
    assert match.entry.test_name == "Alanine Aminotransferase"
    assert match.confidence == SYNONYM_MATCH

    assert catalog.find_best_match("Hemoglobin").entry.test_name == "Haemoglobin"


def test_no_match(catalog):
    assert catalog.find_best_match("Zinc protoporphyrin") is None
    assert catalog.find_best_match("") is None


def test_short_names_do_not_match_by_containment(catalog):
    # "ca" is contained in many names; only the synonym should match
    match = catalog.find_best_match("Ca")
    assert match.entry.test_name == "Calcium"
    assert match.match_type == "synonym"


def test_custom_csv(tmp_path):
    path = tmp_path / "catalog.csv"
    path.write_text(
        "test_name,category,panel,description,reference_min,reference_max,units,synonyms\n"
        "Ferritin,Micronutrients,Iron,Iron stores,30,400,ug/L,serum ferritin;ferr\n"
        ",skipped,,,,,,\n"
    )
    catalog = TestCatalog.from_csv(path)

    assert len(catalog) == 1
    assert catalog.find_best_match("ferr").entry.units == "ug/L"


def test_missing_csv(tmp_path):
    with pytest.raises(ConfigurationError):
        TestCatalog.from_csv(tmp_path / "missing.csv")


def test_csv_without_name_column(tmp_path):
    path = tmp_path / "bad.csv"
    path.write_text("name,category\nHDL,Lipids\n")
    with pytest.raises(ConfigurationError):
        TestCatalog.from_csv(path)


@pytest.mark.parametrize("report_name, expected", [
    ("Testosterone, Free", "Free Testosterone"),
    ("Haemoglobin A1c", "HbA1c"),
    ("Fasting Plasma Glucose", "Glucose"),
    ("Non-HDL Cholesterol", None),
    ("Total Iron Binding Capacity", None),
])
def test_qualified_names_match_their_own_analyte(catalog, report_name, expected):
    match = catalog.find_best_match(report_name)
    assert (match.entry.test_name if match else None) == expected


def test_longest_contained_name_wins(tmp_path):
    path = tmp_path / "catalog.csv"
    path.write_text(
        "test_name,category,panel,description,reference_min,reference_max,units,synonyms\n"
        "Vitamin D,Micronutrients,,,50,175,nmol/L,\n"
        "Vitamin D Total,Micronutrients,,,75,200,nmol/L,\n"
    )
    catalog = TestCatalog.from_csv(path)

    match = catalog.find_best_match("Serum Vitamin D Total")
    assert match.entry.test_name == "Vitamin D Total"
    assert match.match_type == "contains"
