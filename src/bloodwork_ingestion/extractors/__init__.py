"""
Extraction stage: page rasterization, vision model calls, tolerant JSON
recovery from the model's replies.
"""

from .pdf_rasterizer import (
    PageRasterizer,
    PdftoppmRasterizer,
    PdfiumRasterizer,
    RasterizedDocument,
    count_pdf_pages,
    create_rasterizer,
)
from .vision_client import VisionExtractionClient, create_vision_client
from .json_extractor import TolerantJsonExtractor, ParseOutcome, extract_records
from .prompts import SYSTEM_PROMPT, USER_PROMPT
