# ============================================================================
# src/bloodwork_ingestion/extractors/openai_vision_client.py
# ============================================================================
"""
OpenAI / Azure OpenAI vision backend.

The SDK client is synchronous; each call runs in the default executor so
the event loop keeps serving other uploads while a page is in flight.
"""

import asyncio
import logging
from typing import Any, Optional

from openai import AzureOpenAI, OpenAI

from ..config.vision_config import VisionSettings
from ..utils.exceptions import ConfigurationError
from .vision_client import VisionExtractionClient

logger = logging.getLogger(__name__)


class OpenAIVisionClient(VisionExtractionClient):
    """
    Chat-completions client with inline page images.

    Args:
        model: Model name (OpenAI) or deployment name (Azure)
        client: Pre-built OpenAI/AzureOpenAI client; built lazily from the
            credentials below when None
        api_key: OpenAI or Azure API key
        azure_endpoint: Set to talk to Azure OpenAI instead of api.openai.com
        api_version: Azure API version
        max_tokens: Completion token limit
        temperature: Sampling temperature
    """

    name = "openai"

    def __init__(
        self,
        model: str = "gpt-4.1",
        client: Optional[Any] = None,
        api_key: str = "",
        azure_endpoint: str = "",
        api_version: str = "2024-02-01",
        max_tokens: int = 4000,
        temperature: float = 0.1,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.model = model
        self.api_key = api_key
        self.azure_endpoint = azure_endpoint
        self.api_version = api_version
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = client

    @classmethod
    def from_settings(cls, settings: VisionSettings) -> "OpenAIVisionClient":
        common = dict(
            max_tokens=settings.VISION_MAX_TOKENS,
            temperature=settings.VISION_TEMPERATURE,
            timeout=settings.VISION_TIMEOUT,
            max_image_dim=settings.VISION_MAX_IMAGE_DIM,
        )
        if settings.VISION_BACKEND.lower() == "azure":
            if not settings.AZURE_OPENAI_ENDPOINT or not settings.AZURE_OPENAI_API_KEY:
                raise ConfigurationError(
                    "Azure OpenAI credentials not configured. "
                    "Set AZURE_OPENAI_ENDPOINT and AZURE_OPENAI_API_KEY."
                )
            return cls(
                model=settings.AZURE_OPENAI_DEPLOYMENT,
                api_key=settings.AZURE_OPENAI_API_KEY,
                azure_endpoint=settings.AZURE_OPENAI_ENDPOINT,
                api_version=settings.AZURE_OPENAI_API_VERSION,
                **common,
            )

        if not settings.OPENAI_API_KEY:
            raise ConfigurationError("OPENAI_API_KEY is not set")
        return cls(model=settings.OPENAI_MODEL, api_key=settings.OPENAI_API_KEY, **common)

    @property
    def client(self):
        """Lazy load the SDK client."""
        if self._client is None:
            if self.azure_endpoint:
                self._client = AzureOpenAI(
                    azure_endpoint=self.azure_endpoint,
                    api_key=self.api_key,
                    api_version=self.api_version,
                    max_retries=0,
                )
                logger.info(f"Azure OpenAI client initialized: deployment={self.model}")
            else:
                self._client = OpenAI(api_key=self.api_key, max_retries=0)
                logger.info(f"OpenAI client initialized: model={self.model}")
        return self._client

    def _build_messages(self, image_b64: str, mime_type: str):
        return [
            {"role": "system", "content": self.system_prompt},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": self.user_prompt},
                    {
                        "type": "image_url",
                        "image_url": {
                            "url": f"data:{mime_type};base64,{image_b64}",
                            "detail": "high",
                        },
                    },
                ],
            },
        ]

    async def _complete(self, image_b64: str, mime_type: str) -> str:
        messages = self._build_messages(image_b64, mime_type)

        def call_api():
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
            return response.choices[0].message.content or ""

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, call_api)
