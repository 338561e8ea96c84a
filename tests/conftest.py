# ============================================================================
# FILE: tests/conftest.py
# ============================================================================
"""
Pytest configuration and shared fixtures for testing.
"""

import pytest

from bloodwork_ingestion.core.extraction_pipeline import ExtractionPipeline
from bloodwork_ingestion.core.ingestion_service import IngestionService
from bloodwork_ingestion.core.result_store import ResultStore
from bloodwork_ingestion.extractors.json_extractor import TolerantJsonExtractor
from bloodwork_ingestion.processors.lab.normalizer import ResultNormalizer
from bloodwork_ingestion.utils.exceptions import ExtractionError
from tests.fakes import FakeRasterizer, FakeVisionClient


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def make_pdf_bytes():
    """Factory for bytes that pass upload validation; ``seed`` varies the content."""
    def _make(seed="report", size=2048):
        header = b"%PDF-1.4\n% " + seed.encode() + b"\n"
        return header + b"0" * max(0, size - len(header))
    return _make


@pytest.fixture
def pdf_bytes(make_pdf_bytes):
    return make_pdf_bytes()


@pytest.fixture
def result_store(tmp_path):
    return ResultStore(tmp_path / "bloodwork.db")


@pytest.fixture
def make_service(result_store):
    """
    Factory for an IngestionService over fakes.

    Returns (service, vision_client, rasterizer).
    """
    def _make(replies, page_count=1, normalizer=None):
        rasterizer = FakeRasterizer(page_count=page_count)
        vision = FakeVisionClient(replies)
        pipeline = ExtractionPipeline(rasterizer, vision, TolerantJsonExtractor())
        service = IngestionService(
            pipeline=pipeline,
            normalizer=normalizer or ResultNormalizer(catalog=None),
            store=result_store,
        )
        return service, vision, rasterizer
    return _make


@pytest.fixture
def extraction_failure():
    return ExtractionError("Vision model call failed", details="ConnectionError: refused")
