# ============================================================================
# src/bloodwork_ingestion/extractors/vision_client.py
# ============================================================================
"""
Vision Extraction Client

One request per page image: fixed system instruction + fixed user
instruction + the page inlined as base64. The reply text is returned as-is;
parsing is the TolerantJsonExtractor's job.

Any failure of the remote call (network, auth, rate limit, timeout) is
raised as ExtractionError carrying the page index. No retries here.

Backends live in openai_vision_client.py and ollama_vision_client.py;
create_vision_client() picks one from VisionSettings.
"""

import asyncio
import base64
import io
import logging
from abc import ABC, abstractmethod
from typing import Optional

from PIL import Image, UnidentifiedImageError

from ..config.vision_config import VisionSettings, vision_settings
from ..utils.exceptions import ConfigurationError, ExtractionError
from .prompts import SYSTEM_PROMPT, USER_PROMPT

logger = logging.getLogger(__name__)


class VisionExtractionClient(ABC):
    """
    Base class for page-image-in, text-out model clients.

    Args:
        timeout: Seconds allowed for one page call
        max_image_dim: Longest side (px) before a page is downscaled
        system_prompt: Role instruction
        user_prompt: Output-shape instruction
    """

    name = "vision"

    def __init__(
        self,
        timeout: float = 120.0,
        max_image_dim: int = 2048,
        system_prompt: str = SYSTEM_PROMPT,
        user_prompt: str = USER_PROMPT,
    ):
        self.timeout = timeout
        self.max_image_dim = max_image_dim
        self.system_prompt = system_prompt
        self.user_prompt = user_prompt

    async def extract_page(self, image_bytes: bytes, page_index: int) -> str:
        """
        Send one page image to the model and return its raw reply.

        Raises:
            ExtractionError: the remote call failed or timed out
        """
        # Decoding and re-encoding a page image is CPU-bound
        loop = asyncio.get_running_loop()
        image_b64, mime_type = await loop.run_in_executor(None, self._prepare_image, image_bytes)

        try:
            text = await asyncio.wait_for(
                self._complete(image_b64, mime_type),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ExtractionError(
                f"Vision model timed out on page {page_index + 1}",
                page_index=page_index,
                details=f"no reply within {self.timeout}s",
            ) from e
        except ExtractionError as e:
            if e.page_index is None:
                e.page_index = page_index
            raise
        except Exception as e:
            raise ExtractionError(
                f"Vision model call failed on page {page_index + 1}",
                page_index=page_index,
                details=f"{type(e).__name__}: {e}",
            ) from e

        logger.debug(f"{self.name}: page {page_index + 1} reply is {len(text or '')} chars")
        return text or ""

    @abstractmethod
    async def _complete(self, image_b64: str, mime_type: str) -> str:
        """Backend call. Returns the model's text reply."""

    async def close(self) -> None:
        """Release network resources held by the backend."""

    def _prepare_image(self, image_bytes: bytes):
        """
        Downscale to ``max_image_dim`` and return (base64, mime type).

        Pages within the limit are sent untouched as PNG. Larger pages are
        resized and re-encoded as JPEG to keep the payload small.
        """
        try:
            img = Image.open(io.BytesIO(image_bytes))
            w, h = img.size
        except (UnidentifiedImageError, OSError) as e:
            logger.warning(f"Could not inspect page image ({e}), sending original")
            return base64.b64encode(image_bytes).decode("utf-8"), "image/png"

        if max(w, h) <= self.max_image_dim:
            return base64.b64encode(image_bytes).decode("utf-8"), "image/png"

        scale = self.max_image_dim / max(w, h)
        new_w, new_h = int(w * scale), int(h * scale)
        img = img.resize((new_w, new_h), Image.LANCZOS)
        logger.info(f"Resized page image {w}x{h} -> {new_w}x{new_h}")

        if img.mode in ("RGBA", "P", "LA"):
            img = img.convert("RGB")
        buf = io.BytesIO()
        img.save(buf, format="JPEG", quality=90)
        return base64.b64encode(buf.getvalue()).decode("utf-8"), "image/jpeg"


def create_vision_client(settings: Optional[VisionSettings] = None) -> VisionExtractionClient:
    """Build the client selected by VISION_BACKEND."""
    settings = settings or vision_settings
    backend = settings.VISION_BACKEND.lower()

    if backend in ("openai", "azure"):
        from .openai_vision_client import OpenAIVisionClient
        return OpenAIVisionClient.from_settings(settings)
    if backend == "ollama":
        from .ollama_vision_client import OllamaVisionClient
        return OllamaVisionClient.from_settings(settings)

    raise ConfigurationError(f"Unknown VISION_BACKEND: {settings.VISION_BACKEND}")
