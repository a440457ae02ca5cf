from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class GenerationAttempt:
    prompt: str
    provider_id: str
    deadline: float
    attempt_number: int

    def __post_init__(self) -> None:
        if self.attempt_number < 1:
            raise ValueError("attempt_number is 1-based")


@dataclass(frozen=True)
class GenerationResult:
    image_bytes: bytes
    content_type: str
    provider_id: str

    def __post_init__(self) -> None:
        if not self.image_bytes:
            raise ValueError(f"{self.provider_id} returned an empty image")

    @property
    def extension(self) -> str:
        return CONTENT_TYPE_EXTENSIONS.get(self.content_type, ".png")


CONTENT_TYPE_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
}
