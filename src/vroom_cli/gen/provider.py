from __future__ import annotations

from abc import ABC, abstractmethod

from .types import GenerationResult


class ImageProvider(ABC):
    @property
    @abstractmethod
    def provider_id(self) -> str: ...

    @property
    @abstractmethod
    def deadline(self) -> float:
        """Maximum seconds a single generation attempt may take."""

    @abstractmethod
    def generate(self, prompt: str) -> GenerationResult:
        """Generate an image for the prompt.

        Must not write anything on failure. Raises ProviderError (or any exception
        the classifier understands) when the vendor call fails.
        """
        raise NotImplementedError
