# ============================================================================
# src/bloodwork_ingestion/extractors/ollama_vision_client.py
# ============================================================================
"""
Local vision backend served by Ollama.

Uses the /api/chat endpoint with the page image attached to the user
message. Useful for running the pipeline without sending reports to a
hosted model.
"""

import logging
from typing import Optional

import aiohttp

from ..config.vision_config import VisionSettings
from ..utils.exceptions import ExtractionError
from .vision_client import VisionExtractionClient

logger = logging.getLogger(__name__)


class OllamaVisionClient(VisionExtractionClient):
    """
    Ollama chat client.

    Args:
        host: Ollama base URL
        model: Vision-capable model tag (e.g. minicpm-v, llava)
        max_tokens: num_predict limit
        temperature: Sampling temperature
    """

    name = "ollama"

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "minicpm-v",
        max_tokens: int = 4000,
        temperature: float = 0.1,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.host = host.rstrip("/")
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._session: Optional[aiohttp.ClientSession] = None

        logger.info(f"Ollama vision client initialized: {self.host} / {self.model}")

    @classmethod
    def from_settings(cls, settings: VisionSettings) -> "OllamaVisionClient":
        return cls(
            host=settings.OLLAMA_HOST,
            model=settings.OLLAMA_VISION_MODEL,
            max_tokens=settings.VISION_MAX_TOKENS,
            temperature=settings.VISION_TEMPERATURE,
            timeout=settings.VISION_TIMEOUT,
            max_image_dim=settings.VISION_MAX_IMAGE_DIM,
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close the session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def _complete(self, image_b64: str, mime_type: str) -> str:
        session = await self._get_session()
        payload = {
            "model": self.model,
            "stream": False,
            "messages": [
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": self.user_prompt, "images": [image_b64]},
            ],
            "options": {
                "temperature": self.temperature,
                "num_predict": self.max_tokens,
            },
        }

        async with session.post(f"{self.host}/api/chat", json=payload) as response:
            if response.status != 200:
                error = await response.text()
                raise ExtractionError(
                    f"Ollama returned HTTP {response.status}",
                    details=error[:500],
                )
            data = await response.json()

        return data.get("message", {}).get("content", "")
