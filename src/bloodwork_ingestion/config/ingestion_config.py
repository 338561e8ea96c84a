# ============================================================================
# src/bloodwork_ingestion/config/ingestion_config.py
# ============================================================================
"""
Ingestion Settings
- Rasterizer backend, resolution and limits
- Upload validation
- Normalization options (dates, catalog matching, de-duplication)
- Tolerant JSON extraction options
"""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class IngestionSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Rasterization
    RASTERIZER_BACKEND: str = Field(
        default="pdftoppm",
        description="pdftoppm (external poppler process) | pdfium (in-process)"
    )
    PDFTOPPM_PATH: str = Field(default="pdftoppm")
    RASTER_DPI: int = Field(default=150, description="Render resolution for page images")
    RASTER_TIMEOUT: float = Field(
        default=60.0,
        description="Seconds allowed for converting one page"
    )
    MAX_PAGES: int = Field(default=20, description="Pages beyond this are not sent to the model")
    SCRATCH_DIR: Optional[Path] = Field(
        default=None,
        description="Parent for scratch directories (system temp dir when unset)"
    )

    # Upload validation
    MIN_FILE_SIZE: int = Field(default=1024, description="Smallest accepted PDF, bytes")
    MAX_FILE_SIZE: int = Field(default=25 * 1024 * 1024, description="Largest accepted PDF, bytes")

    # Normalization
    DATE_DAY_FIRST: bool = Field(
        default=True,
        description="Read ambiguous numeric dates such as 02/09/2022 as day/month/year"
    )
    DEDUPE_WITHIN_DOCUMENT: bool = Field(
        default=True,
        description="Drop records repeated across pages of the same document"
    )

    # Test catalog
    CATALOG_ENABLED: bool = Field(default=True)
    CATALOG_PATH: Optional[Path] = Field(
        default=None,
        description="CSV catalog of known tests (bundled catalog when unset)"
    )
    CATALOG_MATCH_THRESHOLD: int = Field(
        default=70,
        description="Minimum match confidence (0-100) for standardizing a test name"
    )

    # Tolerant JSON extraction
    JSON_REPAIR_ENABLED: bool = Field(
        default=False,
        description="Try json_repair on a bracket slice that fails strict parsing"
    )

ingestion_settings = IngestionSettings()
