from __future__ import annotations

import hashlib
import io
import textwrap
from typing import Optional

from ..config import ProviderSettings
from ..provider import ImageProvider
from ..types import GenerationResult

try:
    from PIL import Image, ImageDraw
except ImportError:
    Image = None  # type: ignore
    ImageDraw = None  # type: ignore


def _require_pillow() -> None:
    if Image is None:
        raise RuntimeError(
            "Pillow is required for the placeholder provider. "
            "Install with: uv pip install -e '.[placeholders]'"
        )


WIDTH = 1920
HEIGHT = 1080
DEFAULT_DEADLINE = 10.0


class PlaceholderProvider(ImageProvider):
    """Offline provider that renders the prompt onto a flat background."""

    def __init__(self, settings: Optional[ProviderSettings] = None):
        settings = settings or ProviderSettings()
        self._deadline = settings.deadline_sec or DEFAULT_DEADLINE

    @property
    def provider_id(self) -> str:
        return "placeholder"

    @property
    def deadline(self) -> float:
        return self._deadline

    def generate(self, prompt: str) -> GenerationResult:
        _require_pillow()

        # Same prompt, same colour
        digest = hashlib.sha256(prompt.encode("utf-8")).digest()
        color = (128 + digest[0] // 2, 128 + digest[1] // 2, 128 + digest[2] // 2, 255)

        img = Image.new("RGBA", (WIDTH, HEIGHT), color)
        d = ImageDraw.Draw(img)
        label = "\n".join(textwrap.wrap(prompt, width=60)[:12])
        d.text((48, 48), label, fill=(0, 0, 0, 255))

        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return GenerationResult(
            image_bytes=buf.getvalue(),
            content_type="image/png",
            provider_id=self.provider_id,
        )
