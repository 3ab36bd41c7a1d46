"""Abstract base class for image-generation adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod

from thumbai.schemas import ThumbnailArtifact


class ImageProvider(ABC):
    """Abstract base class for image-generation provider adapters.

    Adapters raise ``TransientProviderError`` for failures worth retrying
    and ``ProviderRejectedError`` when the provider refuses the request.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name (e.g., 'openai')."""
        ...

    @abstractmethod
    async def generate(self, prompt: str) -> ThumbnailArtifact:
        """Generate one thumbnail for a prompt.

        Args:
            prompt: Natural language description of the thumbnail

        Returns:
            ThumbnailArtifact referencing the generated image
        """
        ...

    async def close(self) -> None:
        """Release any held connections."""
        return None
