# ============================================================================
# src/bloodwork_ingestion/core/extraction_pipeline.py
# ============================================================================
"""
Extraction Pipeline

PDF bytes -> page images -> one model reply per page -> raw records.

Pages are sent one at a time, in page order, and their records are
concatenated in that order. A page whose model call fails, or whose reply
holds no parseable array, contributes nothing; the other pages still
count. Pages the rasterizer could not render are reported as unrendered.
Only when every page's model call fails does the document fail,
with one ExtractionError aggregating the per-page errors.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .context.lab_result import RawExtractionRecord
from ..extractors.json_extractor import TolerantJsonExtractor
from ..extractors.pdf_rasterizer import PageRasterizer
from ..extractors.vision_client import VisionExtractionClient
from ..utils.exceptions import ExtractionError
from ..utils.logging import log_performance

logger = logging.getLogger(__name__)


@dataclass
class ExtractionOutcome:
    records: List[RawExtractionRecord] = field(default_factory=list)
    page_count: int = 0
    pages_processed: int = 0
    failed_pages: List[int] = field(default_factory=list)
    unparsed_pages: List[int] = field(default_factory=list)
    unrendered_pages: List[int] = field(default_factory=list)

    @property
    def successful_pages(self) -> int:
        return self.pages_processed - len(self.failed_pages) - len(self.unparsed_pages)


class ExtractionPipeline:
    """
    Drives rasterizer, vision client and JSON extractor for one document.

    Args:
        rasterizer: PDF to page images
        vision_client: Page image to model reply
        json_extractor: Model reply to raw records
    """

    def __init__(
        self,
        rasterizer: PageRasterizer,
        vision_client: VisionExtractionClient,
        json_extractor: Optional[TolerantJsonExtractor] = None,
    ):
        self.rasterizer = rasterizer
        self.vision_client = vision_client
        self.json_extractor = json_extractor or TolerantJsonExtractor()

    @log_performance(logger, "Document extraction")
    async def run(self, pdf_bytes: bytes) -> ExtractionOutcome:
        """
        Raises:
            RasterizationError: no page images could be produced
            ExtractionError: the model call failed on every page
        """
        document = await self.rasterizer.rasterize(pdf_bytes)
        outcome = ExtractionOutcome(
            page_count=document.page_count,
            unrendered_pages=list(document.failed_pages),
        )
        errors: List[ExtractionError] = []

        for page_index, image in zip(document.page_indices, document.pages):
            outcome.pages_processed += 1
            logger.info(f"Extracting page {page_index + 1}/{document.page_count}")

            try:
                text = await self.vision_client.extract_page(image, page_index)
            except ExtractionError as e:
                if e.page_index is None:
                    e.page_index = page_index
                logger.error(f"Page {page_index + 1}: {e.message} ({e.details})", extra={"page": page_index + 1})
                errors.append(e)
                outcome.failed_pages.append(page_index)
                continue

            parsed = self.json_extractor.extract(text, page_index=page_index)
            if not parsed.ok:
                logger.warning(
                    f"Page {page_index + 1}: {type(parsed.error).__name__}: {parsed.error.message}. "
                    f"Reply (first 200 chars): {(text or '')[:200]!r}"
                )
                outcome.unparsed_pages.append(page_index)
                continue

            logger.info(f"Page {page_index + 1}: {len(parsed.records)} record(s)")
            outcome.records.extend(parsed.records)

        if document.pages and len(errors) == len(document.pages):
            raise ExtractionError(
                f"Vision model failed on all {len(errors)} page(s)",
                failures=errors,
                details="; ".join(f"page {e.page_index + 1}: {e.details or e.message}" for e in errors),
            )

        logger.info(
            f"Extracted {len(outcome.records)} raw record(s) from "
            f"{outcome.successful_pages}/{outcome.pages_processed} page(s)"
        )
        return outcome
