# ============================================================================
# src/bloodwork_ingestion/config/base_config.py
# ============================================================================
"""
Base Configuration
- Project root and data directory
- Results database (lab results + processed-file markers)
- Object storage for uploaded PDFs
- API listener
"""

from pathlib import Path
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseSettingsConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Root project directory
    PROJECT_ROOT: Path = Field(
        default_factory=lambda: Path(__file__).parent.parent.parent.parent,
        description="Root directory of the project"
    )

    DATA_DIR: Path = Field(
        default=Path("data"),
        description="Directory for local databases"
    )

    # Persisted results and processed-file markers
    RESULTS_DB_PATH: Path = Field(
        default=Path("data/bloodwork.db"),
        description="SQLite database holding lab results and processed-file markers"
    )

    # Object storage (uploaded originals)
    STORAGE_ROOT: Path = Field(
        default=Path("data/storage"),
        description="Root directory of the local object store"
    )
    STORAGE_BUCKET: str = Field(
        default="blood-test-pdfs",
        description="Bucket that receives uploaded lab reports"
    )
    PUBLIC_BASE_URL: str = Field(
        default="http://localhost:3000/storage",
        description="Prefix for public retrieval URLs of stored files"
    )

    # HTTP listener
    API_HOST: str = Field(default="0.0.0.0", description="Bind address for the API")
    API_PORT: int = Field(default=3000, description="Listening port for the ingestion endpoint")
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:8080"],
        description="Origins allowed to call the API from a browser"
    )

    def create_directories(self):
        """Create all necessary directories if they don't exist"""
        dirs = [
            self.DATA_DIR,
            self.RESULTS_DB_PATH.parent,
            self.STORAGE_ROOT / self.STORAGE_BUCKET,
        ]
        for directory in dirs:
            directory.mkdir(parents=True, exist_ok=True)

# Global instance
base_settings = BaseSettingsConfig()
