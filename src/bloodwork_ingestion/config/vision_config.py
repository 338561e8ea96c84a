# ============================================================================
# src/bloodwork_ingestion/config/vision_config.py
# ============================================================================
"""
Vision Model Settings
- Backend selection (OpenAI, Azure OpenAI, local Ollama)
- Credentials and model names
- Generation and timeout limits
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class VisionSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    VISION_BACKEND: str = Field(
        default="openai",
        description="openai | azure | ollama"
    )

    # OpenAI
    OPENAI_API_KEY: str = Field(default="", description="API key for api.openai.com")
    OPENAI_MODEL: str = Field(default="gpt-4.1", description="Multimodal chat model")

    # Azure OpenAI
    AZURE_OPENAI_ENDPOINT: str = Field(default="")
    AZURE_OPENAI_API_KEY: str = Field(default="")
    AZURE_OPENAI_DEPLOYMENT: str = Field(default="gpt-4o")
    AZURE_OPENAI_API_VERSION: str = Field(default="2024-02-01")

    # Local Ollama
    OLLAMA_HOST: str = Field(default="http://localhost:11434")
    OLLAMA_VISION_MODEL: str = Field(default="minicpm-v")

    # Generation
    VISION_TIMEOUT: float = Field(
        default=120.0,
        description="Seconds allowed for one page's model call"
    )
    VISION_MAX_TOKENS: int = Field(default=4000)
    VISION_TEMPERATURE: float = Field(default=0.1)
    VISION_MAX_IMAGE_DIM: int = Field(
        default=2048,
        description="Pages larger than this (px, longest side) are downscaled before upload"
    )

vision_settings = VisionSettings()
