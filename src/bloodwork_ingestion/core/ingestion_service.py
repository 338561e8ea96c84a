# ============================================================================
# src/bloodwork_ingestion/core/ingestion_service.py
# ============================================================================
"""
Ingestion Service

One uploaded PDF for one owner, end to end:

    validate -> hash -> [lock] guard check -> extract -> normalize
             -> persist -> mark processed [unlock]

The duplicate check runs before any rasterization or model call, so a
re-upload costs a hash and two queries. The processed-file marker is
written strictly after the results are persisted; if persistence fails
no marker exists and the next attempt is free to run.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .context.lab_result import NormalizedLabResult
from .duplicate_guard import DuplicateGuard
from .extraction_pipeline import ExtractionOutcome, ExtractionPipeline
from .result_store import ResultStore
from ..config.base_config import BaseSettingsConfig, base_settings
from ..config.ingestion_config import IngestionSettings, ingestion_settings
from ..config.vision_config import VisionSettings, vision_settings
from ..extractors.json_extractor import TolerantJsonExtractor
from ..extractors.pdf_rasterizer import create_rasterizer
from ..extractors.vision_client import create_vision_client
from ..processors.lab.catalog import TestCatalog
from ..processors.lab.normalizer import ResultNormalizer
from ..utils.exceptions import NoResultsExtractedError
from ..utils.file_utils import compute_content_hash, validate_pdf_bytes
from ..utils.logging import log_performance

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    """What one successful ingestion produced."""
    file_hash: str
    file_name: str
    size: int
    results: List[NormalizedLabResult] = field(default_factory=list)
    page_count: int = 0
    failed_pages: List[int] = field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": True,
            "data": [r.to_dict() for r in self.results],
            "debug": {
                "fileInfo": {
                    "size": self.size,
                    "pages": self.page_count,
                    "totalResults": len(self.results),
                },
                "fileHash": self.file_hash,
            },
        }


class IngestionService:
    """
    Runs the full ingestion flow for one document.

    Args:
        pipeline: Rasterize + extract + tolerant parse
        normalizer: Raw records to NormalizedLabResults
        store: Result and marker persistence
        guard: Duplicate gate sharing ``store`` (built when None)
        min_file_size: Smallest accepted upload in bytes
        max_file_size: Largest accepted upload in bytes (0 = unlimited)
    """

    def __init__(
        self,
        pipeline: ExtractionPipeline,
        normalizer: ResultNormalizer,
        store: ResultStore,
        guard: Optional[DuplicateGuard] = None,
        min_file_size: int = 1024,
        max_file_size: int = 0,
    ):
        self.pipeline = pipeline
        self.normalizer = normalizer
        self.store = store
        self.guard = guard or DuplicateGuard(store)
        self.min_file_size = min_file_size
        self.max_file_size = max_file_size

    @log_performance(logger, "Document ingestion")
    async def ingest(self, content: bytes, file_name: str, owner_id: str) -> IngestionResult:
        """
        Raises:
            InvalidDocumentError: empty, too small/large, or not a PDF
            DuplicateDocumentError: this owner already has results for these bytes
            RasterizationError: no page images could be produced
            ExtractionError: the model call failed on every page
            NoResultsExtractedError: nothing usable came back
            PersistenceError: results (or the marker) could not be written
        """
        validate_pdf_bytes(content, min_size=self.min_file_size, max_size=self.max_file_size)
        file_hash = compute_content_hash(content)
        logger.info(
            f"Ingesting '{file_name}' ({len(content)} bytes, sha256 {file_hash[:12]}) for owner {owner_id}",
            extra={"owner_id": owner_id, "file_hash": file_hash},
        )

        async with self.guard.lock(file_hash, owner_id):
            await self.guard.check(file_hash, owner_id)

            outcome = await self.pipeline.run(content)
            results = self.normalizer.normalize(
                outcome.records,
                source_file_hash=file_hash,
                owner_id=owner_id,
                source_file_name=file_name,
            )
            if not results:
                raise NoResultsExtractedError(
                    "No test results could be extracted from the PDF",
                    details=(
                        f"{len(outcome.records)} raw record(s) from "
                        f"{outcome.pages_processed} page(s), none usable"
                    ),
                )

            await self.store.insert_results(results)
            await self.guard.mark_processed(file_hash, owner_id, file_name)

        logger.info(f"Ingested {len(results)} result(s) from '{file_name}'")
        return IngestionResult(
            file_hash=file_hash,
            file_name=file_name,
            size=len(content),
            results=results,
            page_count=outcome.page_count,
            failed_pages=sorted(outcome.unrendered_pages + outcome.failed_pages + outcome.unparsed_pages),
        )

    async def parse(self, content: bytes) -> ExtractionOutcome:
        """Extraction only: no owner, no duplicate check, nothing persisted."""
        validate_pdf_bytes(content, min_size=self.min_file_size, max_size=self.max_file_size)
        return await self.pipeline.run(content)

    async def close(self) -> None:
        await self.pipeline.vision_client.close()


def build_ingestion_service(
    base: Optional[BaseSettingsConfig] = None,
    ingestion: Optional[IngestionSettings] = None,
    vision: Optional[VisionSettings] = None,
) -> IngestionService:
    """Wire an IngestionService from settings."""
    base = base or base_settings
    ingestion = ingestion or ingestion_settings
    vision = vision or vision_settings

    pipeline = ExtractionPipeline(
        rasterizer=create_rasterizer(ingestion),
        vision_client=create_vision_client(vision),
        json_extractor=TolerantJsonExtractor(repair=ingestion.JSON_REPAIR_ENABLED),
    )

    catalog = None
    if ingestion.CATALOG_ENABLED:
        catalog = TestCatalog.from_csv(ingestion.CATALOG_PATH)

    normalizer = ResultNormalizer(
        catalog=catalog,
        match_threshold=ingestion.CATALOG_MATCH_THRESHOLD,
        day_first=ingestion.DATE_DAY_FIRST,
        dedupe=ingestion.DEDUPE_WITHIN_DOCUMENT,
    )

    return IngestionService(
        pipeline=pipeline,
        normalizer=normalizer,
        store=ResultStore(base.RESULTS_DB_PATH),
        min_file_size=ingestion.MIN_FILE_SIZE,
        max_file_size=ingestion.MAX_FILE_SIZE,
    )
