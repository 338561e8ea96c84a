# ============================================================================
# FILE: tests/fakes.py
# ============================================================================
"""
Test doubles for the rasterizer, the vision model and the storage bucket.
"""

import json

from bloodwork_ingestion.extractors.pdf_rasterizer import PageRasterizer, RasterizedDocument
from bloodwork_ingestion.extractors.vision_client import VisionExtractionClient


class FakeRasterizer(PageRasterizer):
    """Returns one placeholder image per page without touching the PDF."""

    def __init__(self, page_count=1):
        super().__init__()
        self.page_count = page_count
        self.calls = 0

    async def rasterize(self, pdf_bytes):
        self.calls += 1
        pages = [f"page-{i}".encode() for i in range(self.page_count)]
        return RasterizedDocument(pages=pages, page_count=self.page_count)


class FakeVisionClient(VisionExtractionClient):
    """
    Replies from a fixed list, one entry per page.

    An entry that is an Exception instance is raised instead of returned.
    The last entry is reused for pages beyond the list.
    """

    name = "fake"

    def __init__(self, replies):
        super().__init__()
        self.replies = list(replies)
        self.calls = []

    async def extract_page(self, image_bytes, page_index):
        self.calls.append(page_index)
        reply = self.replies[min(page_index, len(self.replies) - 1)]
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def _complete(self, image_b64, mime_type):
        raise NotImplementedError

    @property
    def call_count(self):
        return len(self.calls)


def lab_reply(*records, prose=True):
    """A model reply holding ``records`` as a JSON array, wrapped in prose."""
    payload = json.dumps(list(records))
    if prose:
        return f"Here are the results: {payload} Hope this helps!"
    return payload


def lab_record(test="HDL", value="52", reference_range="40-60", status="normal",
               date="2023-03-15", unit="mg/dL", category="Lipids"):
    return {
        "test": test,
        "category": category,
        "value": value,
        "unit": unit,
        "reference_range": reference_range,
        "status": status,
        "date": date,
    }
