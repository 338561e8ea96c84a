# ============================================================================
# FILE: tests/unit/test_ingestion_service.py
# ============================================================================
"""
Unit tests for end-to-end ingestion: duplicate detection, orphan
self-healing, partial page failure and marker ordering
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from bloodwork_ingestion.core.context.lab_result import ProcessedFileMarker
from bloodwork_ingestion.extractors.pdf_rasterizer import RasterizedDocument
from bloodwork_ingestion.utils.exceptions import (
    DuplicateDocumentError,
    InvalidDocumentError,
    NoResultsExtractedError,
    PersistenceError,
)
from bloodwork_ingestion.utils.file_utils import compute_content_hash
from tests.fakes import lab_record, lab_reply

OWNER = "user-1"


@pytest.mark.asyncio
async def test_ingest_persists_and_marks(make_service, result_store, pdf_bytes):
    service, vision, _ = make_service([lab_reply(lab_record(test="HDL"), lab_record(test="LDL", value="3.1"))])

    result = await service.ingest(pdf_bytes, "report.pdf", OWNER)

    file_hash = compute_content_hash(pdf_bytes)
    assert result.file_hash == file_hash
    assert len(result.results) == 2
    assert await result_store.count_results(file_hash, OWNER) == 2
    marker = await result_store.get_marker(file_hash, OWNER)
    assert marker.file_name == "report.pdf"

    response = result.to_response()
    assert response["success"] is True
    assert response["debug"]["fileInfo"] == {"size": len(pdf_bytes), "pages": 1, "totalResults": 2}


@pytest.mark.asyncio
async def test_duplicate_refused_before_extraction(make_service, pdf_bytes):
    service, vision, rasterizer = make_service([lab_reply(lab_record())])

    await service.ingest(pdf_bytes, "report.pdf", OWNER)
    assert vision.call_count == 1

    with pytest.raises(DuplicateDocumentError):
        await service.ingest(bytes(pdf_bytes), "renamed.pdf", OWNER)

    # No model call and no rasterization for the second attempt
    assert vision.call_count == 1
    assert rasterizer.calls == 1


@pytest.mark.asyncio
async def test_same_file_other_owner_is_not_duplicate(make_service, pdf_bytes):
    service, vision, _ = make_service([lab_reply(lab_record())])

    await service.ingest(pdf_bytes, "report.pdf", OWNER)
    result = await service.ingest(pdf_bytes, "report.pdf", "user-2")

    assert len(result.results) == 1
    assert vision.call_count == 2


@pytest.mark.asyncio
async def test_orphaned_marker_self_heals(make_service, result_store, pdf_bytes):
    file_hash = compute_content_hash(pdf_bytes)
    stale_time = datetime(2020, 1, 1, tzinfo=timezone.utc)
    await result_store.put_marker(ProcessedFileMarker(file_hash, OWNER, "crashed.pdf", stale_time))
    service, vision, _ = make_service([lab_reply(lab_record())])

    result = await service.ingest(pdf_bytes, "report.pdf", OWNER)

    assert len(result.results) == 1
    assert vision.call_count == 1
    marker = await result_store.get_marker(file_hash, OWNER)
    assert marker.file_name == "report.pdf"
    assert marker.processed_at > stale_time


@pytest.mark.asyncio
async def test_partial_page_failure_is_not_fatal(make_service, pdf_bytes):
    service, _, _ = make_service(
        [
            lab_reply(lab_record(test="HDL")),
            "I'm unable to extract results from this page [see attached",
            lab_reply(lab_record(test="Triglycerides", value="1.2")),
        ],
        page_count=3,
    )

    result = await service.ingest(pdf_bytes, "report.pdf", OWNER)

    assert [r.test_name for r in result.results] == ["HDL", "Triglycerides"]
    assert result.page_count == 3
    assert result.failed_pages == [1]


@pytest.mark.asyncio
async def test_marker_not_written_when_persistence_fails(make_service, result_store, pdf_bytes):
    service, _, _ = make_service([lab_reply(lab_record())])
    service.store = AsyncMock(wraps=result_store)
    service.store.insert_results.side_effect = PersistenceError("Failed to save test results")

    with pytest.raises(PersistenceError):
        await service.ingest(pdf_bytes, "report.pdf", OWNER)

    assert await result_store.get_marker(compute_content_hash(pdf_bytes), OWNER) is None


@pytest.mark.asyncio
async def test_no_results_is_an_error_without_marker(make_service, result_store, pdf_bytes):
    service, _, _ = make_service([lab_reply(lab_record(value="pending"))])

    with pytest.raises(NoResultsExtractedError):
        await service.ingest(pdf_bytes, "report.pdf", OWNER)

    assert await result_store.get_marker(compute_content_hash(pdf_bytes), OWNER) is None


@pytest.mark.asyncio
async def test_invalid_document_rejected_before_extraction(make_service):
    service, vision, _ = make_service([lab_reply(lab_record())])

    with pytest.raises(InvalidDocumentError):
        await service.ingest(b"not a pdf" * 200, "notes.txt", OWNER)
    assert vision.call_count == 0


@pytest.mark.asyncio
async def test_concurrent_identical_uploads_ingest_once(make_service, result_store, pdf_bytes):
    service, vision, _ = make_service([lab_reply(lab_record())])

    outcomes = await asyncio.gather(
        service.ingest(pdf_bytes, "a.pdf", OWNER),
        service.ingest(pdf_bytes, "b.pdf", OWNER),
        return_exceptions=True,
    )

    duplicates = [o for o in outcomes if isinstance(o, DuplicateDocumentError)]
    assert len(duplicates) == 1
    assert vision.call_count == 1
    assert await result_store.count_results(compute_content_hash(pdf_bytes), OWNER) == 1


@pytest.mark.asyncio
async def test_parse_only_does_not_persist(make_service, result_store, pdf_bytes):
    service, _, _ = make_service([lab_reply(lab_record())])

    outcome = await service.parse(pdf_bytes)

    assert [r.test for r in outcome.records] == ["HDL"]
    assert await result_store.get_marker(compute_content_hash(pdf_bytes), OWNER) is None
    assert await result_store.list_results(OWNER) == []


@pytest.mark.asyncio
async def test_unrendered_pages_reported_as_failed(make_service, pdf_bytes):
    service, vision, rasterizer = make_service(
        [lab_reply(lab_record(test="HDL")), lab_reply(lab_record(test="TG", value="1.2"))],
        page_count=3,
    )
    document = RasterizedDocument(
        pages=[b"page-0", b"page-2"], page_count=3, page_indices=[0, 2], failed_pages=[1]
    )
    rasterizer.rasterize = AsyncMock(return_value=document)

    result = await service.ingest(pdf_bytes, "report.pdf", OWNER)

    assert [r.test_name for r in result.results] == ["HDL", "TG"]
    assert vision.calls == [0, 2]
    assert result.failed_pages == [1]
