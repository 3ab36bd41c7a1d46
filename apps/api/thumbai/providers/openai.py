"""OpenAI image-generation adapter.

Talks to the ``/images/generations`` endpoint of any OpenAI-compatible API.
"""

from __future__ import annotations

import logging
import time

import httpx

from thumbai.config import get_settings
from thumbai.errors import ProviderRejectedError, TransientProviderError
from thumbai.providers.base import ImageProvider
from thumbai.schemas import ThumbnailArtifact


logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {408, 409, 429}


class OpenAIImageProvider(ImageProvider):
    """OpenAI Images API adapter."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        size: str | None = None,
        quality: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.api_key = api_key or settings.openai_api_key
        self.base_url = base_url or settings.openai_base_url
        self.model = model or settings.openai_image_model
        self.size = size or settings.openai_image_size
        self.quality = quality or settings.openai_image_quality
        self.timeout = timeout or settings.provider_timeout_seconds

        if not self.api_key:
            raise ValueError("OpenAI API key not configured")

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
            transport=transport,
        )

    @property
    def provider_name(self) -> str:
        return "openai"

    async def generate(self, prompt: str) -> ThumbnailArtifact:
        """Request a single image and return a reference to it."""
        payload = {
            "model": self.model,
            "prompt": prompt,
            "n": 1,
            "size": self.size,
            "quality": self.quality,
            "response_format": "url",
        }

        start_time = time.perf_counter()

        try:
            response = await self._client.post("/images/generations", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in RETRYABLE_STATUS or status >= 500:
                raise TransientProviderError(f"Image provider returned {status}") from e
            raise ProviderRejectedError(f"Image provider rejected the request ({status})") from e
        except httpx.TransportError as e:
            raise TransientProviderError(f"Image provider unreachable: {e.__class__.__name__}") from e
        except ValueError as e:
            raise TransientProviderError("Image provider returned invalid JSON") from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(f"{self.model} responded in {latency_ms}ms")

        images = data.get("data") or []
        if not images:
            raise TransientProviderError("Image provider returned no images")

        image = images[0]
        return ThumbnailArtifact(
            url=image.get("url"),
            b64_json=image.get("b64_json"),
            revised_prompt=image.get("revised_prompt"),
            model=self.model,
            size=self.size,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
