# ============================================================================
# src/bloodwork_ingestion/extractors/pdf_rasterizer.py
# ============================================================================
"""
PDF Rasterizer

Turns a PDF byte buffer into an ordered list of page images (PNG bytes),
one per page, ready to be base64-encoded for a vision model.

Backends:
- PdftoppmRasterizer: writes the PDF into a scratch directory and runs one
  poppler ``pdftoppm`` process per page. The scratch directory is removed
  on every exit path.
- PdfiumRasterizer: renders in-process with pypdfium2 (no poppler needed).

A page that fails to render is logged, listed in ``failed_pages`` and
skipped. Both raise RasterizationError only when no page image at all can
be produced. Neither retries; the caller decides whether to resubmit the
whole request.
"""

import asyncio
import io
import logging
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import pypdfium2

from ..config.ingestion_config import IngestionSettings, ingestion_settings
from ..utils.exceptions import ConfigurationError, RasterizationError
from ..utils.logging import log_performance

logger = logging.getLogger(__name__)


@dataclass
class RasterizedDocument:
    """
    Page images in page order plus the document's true page count.

    ``page_indices`` holds the 0-based page each image came from; pages
    that could not be rendered are listed in ``failed_pages`` instead.
    """
    pages: List[bytes] = field(default_factory=list)
    page_count: int = 0
    image_format: str = "png"
    page_indices: List[int] = field(default_factory=list)
    failed_pages: List[int] = field(default_factory=list)

    def __post_init__(self):
        if not self.page_indices:
            self.page_indices = list(range(len(self.pages)))

    @property
    def truncated(self) -> bool:
        return len(self.pages) + len(self.failed_pages) < self.page_count


def _all_pages_failed(details: List[str]) -> RasterizationError:
    # A missing executable fails every page with the same message
    return RasterizationError("Could not read PDF", details="; ".join(dict.fromkeys(details)))


def count_pdf_pages(pdf_source) -> int:
    """
    Count pages with pypdfium2.

    Args:
        pdf_source: Path, str or bytes

    Raises:
        RasterizationError: the document cannot be opened
    """
    if isinstance(pdf_source, Path):
        pdf_source = str(pdf_source)
    try:
        pdf = pypdfium2.PdfDocument(pdf_source)
    except Exception as e:
        raise RasterizationError("Could not read PDF", details=str(e)) from e
    try:
        return len(pdf)
    finally:
        pdf.close()


class PageRasterizer(ABC):
    """Interface: PDF bytes in, page images out."""

    def __init__(self, dpi: int = 150, max_pages: int = 20):
        self.dpi = dpi
        self.max_pages = max_pages

    @abstractmethod
    async def rasterize(self, pdf_bytes: bytes) -> RasterizedDocument:
        """Convert every page (up to ``max_pages``) into an image."""

    def _pages_to_render(self, page_count: int) -> int:
        if page_count > self.max_pages:
            logger.warning(
                f"Document has {page_count} pages, only the first {self.max_pages} will be extracted"
            )
            return self.max_pages
        return page_count


class PdftoppmRasterizer(PageRasterizer):
    """
    External-process rasterizer built on poppler's pdftoppm.

    Args:
        dpi: Render resolution
        max_pages: Cap on pages rendered
        timeout: Seconds allowed per page conversion
        executable: pdftoppm binary name or path
        scratch_dir: Parent for the scratch directory (system temp when None)
    """

    def __init__(
        self,
        dpi: int = 150,
        max_pages: int = 20,
        timeout: float = 60.0,
        executable: str = "pdftoppm",
        scratch_dir: Optional[Path] = None,
    ):
        super().__init__(dpi=dpi, max_pages=max_pages)
        self.timeout = timeout
        self.executable = executable
        self.scratch_dir = scratch_dir

    @log_performance(logger, "pdftoppm rasterization")
    async def rasterize(self, pdf_bytes: bytes) -> RasterizedDocument:
        if self.scratch_dir is not None:
            Path(self.scratch_dir).mkdir(parents=True, exist_ok=True)

        with tempfile.TemporaryDirectory(prefix="bloodwork-", dir=self.scratch_dir) as scratch:
            scratch_path = Path(scratch)
            pdf_path = scratch_path / "input.pdf"
            pdf_path.write_bytes(pdf_bytes)

            loop = asyncio.get_running_loop()
            page_count = await loop.run_in_executor(None, count_pdf_pages, pdf_path)
            if page_count == 0:
                raise RasterizationError("Could not read PDF", details="document has no pages")

            pages = []
            page_indices = []
            failed_pages = []
            details = []
            for page_number in range(1, self._pages_to_render(page_count) + 1):
                output_prefix = scratch_path / f"page-{page_number:04d}"
                try:
                    pages.append(await self._convert_page(pdf_path, page_number, output_prefix))
                except RasterizationError as e:
                    logger.warning(f"Skipping page {page_number}: {e.details}", extra={"page": page_number})
                    failed_pages.append(page_number - 1)
                    details.append(e.details)
                    continue
                page_indices.append(page_number - 1)

            if not pages:
                raise _all_pages_failed(details)

        logger.info(f"Rasterized {len(pages)}/{page_count} page(s) at {self.dpi} DPI")
        return RasterizedDocument(
            pages=pages,
            page_count=page_count,
            page_indices=page_indices,
            failed_pages=failed_pages,
        )

    async def _convert_page(self, pdf_path: Path, page_number: int, output_prefix: Path) -> bytes:
        cmd = [
            self.executable,
            "-f", str(page_number),
            "-l", str(page_number),
            "-r", str(self.dpi),
            "-png",
            "-singlefile",
            str(pdf_path),
            str(output_prefix),
        ]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise RasterizationError(
                "Could not read PDF",
                details=f"cannot start {self.executable}: {e}",
            ) from e

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise RasterizationError(
                "Could not read PDF",
                details=f"page {page_number} conversion timed out after {self.timeout}s",
            ) from e

        if process.returncode != 0:
            raise RasterizationError(
                "Could not read PDF",
                details=f"pdftoppm exited with {process.returncode} on page {page_number}: "
                        f"{stderr.decode(errors='replace').strip()}",
            )

        image_path = output_prefix.with_suffix(".png")
        if not image_path.exists():
            raise RasterizationError(
                "Could not read PDF",
                details=f"pdftoppm produced no image for page {page_number}",
            )
        return image_path.read_bytes()


class PdfiumRasterizer(PageRasterizer):
    """In-process rasterizer using pypdfium2, run in the default executor."""

    @log_performance(logger, "pdfium rasterization")
    async def rasterize(self, pdf_bytes: bytes) -> RasterizedDocument:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._render, pdf_bytes)

    def _render(self, pdf_bytes: bytes) -> RasterizedDocument:
        try:
            pdf = pypdfium2.PdfDocument(pdf_bytes)
        except Exception as e:
            raise RasterizationError("Could not read PDF", details=str(e)) from e

        scale = self.dpi / 72.0  # PDF points to pixels
        pages = []
        page_indices = []
        failed_pages = []
        details = []
        try:
            page_count = len(pdf)
            if page_count == 0:
                raise RasterizationError("Could not read PDF", details="document has no pages")

            for page_index in range(self._pages_to_render(page_count)):
                try:
                    pages.append(self._render_page(pdf, page_index, scale))
                except Exception as e:
                    logger.warning(f"Skipping page {page_index + 1}: {e}", extra={"page": page_index + 1})
                    failed_pages.append(page_index)
                    details.append(f"page {page_index + 1}: {e}")
                    continue
                page_indices.append(page_index)
        finally:
            pdf.close()

        if not pages:
            raise _all_pages_failed(details)

        logger.info(f"Rasterized {len(pages)}/{page_count} page(s) at {self.dpi} DPI")
        return RasterizedDocument(
            pages=pages,
            page_count=page_count,
            page_indices=page_indices,
            failed_pages=failed_pages,
        )

    @staticmethod
    def _render_page(pdf: pypdfium2.PdfDocument, page_index: int, scale: float) -> bytes:
        page = pdf[page_index]
        try:
            pil_image = page.render(scale=scale).to_pil()
        finally:
            page.close()

        buf = io.BytesIO()
        pil_image.save(buf, format="PNG")
        return buf.getvalue()


def create_rasterizer(settings: Optional[IngestionSettings] = None) -> PageRasterizer:
    """Build the rasterizer selected by RASTERIZER_BACKEND."""
    settings = settings or ingestion_settings
    backend = settings.RASTERIZER_BACKEND.lower()

    if backend == "pdftoppm":
        return PdftoppmRasterizer(
            dpi=settings.RASTER_DPI,
            max_pages=settings.MAX_PAGES,
            timeout=settings.RASTER_TIMEOUT,
            executable=settings.PDFTOPPM_PATH,
            scratch_dir=settings.SCRATCH_DIR,
        )
    if backend == "pdfium":
        return PdfiumRasterizer(dpi=settings.RASTER_DPI, max_pages=settings.MAX_PAGES)

    raise ConfigurationError(f"Unknown RASTERIZER_BACKEND: {settings.RASTERIZER_BACKEND}")
