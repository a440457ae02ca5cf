"""
Stability AI provider (Stable Image Core).
"""
from __future__ import annotations

from typing import Optional

import httpx

from ..config import ProviderSettings
from ..provider import ImageProvider
from ..types import GenerationResult
from .transport import make_client, send

API_URL = "https://api.stability.ai/v2beta/stable-image/generate/core"
DEFAULT_DEADLINE = 90.0


def _hint(status: int, message: str) -> Optional[str]:
    if status == 401:
        return "Invalid Stability AI API key. Get one from https://platform.stability.ai/account/keys"
    if status == 403 or "content_moderation" in message.lower():
        return "Your prompt was flagged by Stability AI content moderation. Try rephrasing it."
    return None


class StabilityProvider(ImageProvider):
    def __init__(
        self,
        api_key: str,
        settings: Optional[ProviderSettings] = None,
        client: Optional[httpx.Client] = None,
    ):
        settings = settings or ProviderSettings()
        self._api_key = api_key
        self._model = settings.model
        self._deadline = settings.deadline_sec or DEFAULT_DEADLINE
        self._client = make_client(self._deadline, client)

    @property
    def provider_id(self) -> str:
        return "stability"

    @property
    def deadline(self) -> float:
        return self._deadline

    def generate(self, prompt: str) -> GenerationResult:
        data = {"prompt": prompt, "output_format": "png", "aspect_ratio": "16:9"}
        if self._model:
            data["style_preset"] = self._model

        response = send(
            self._client,
            self.provider_id,
            "POST",
            API_URL,
            hint_for=_hint,
            headers={"Authorization": f"Bearer {self._api_key}", "Accept": "image/*"},
            data=data,
            files={"none": ("", b"")},
        )
        return GenerationResult(
            image_bytes=response.content,
            content_type="image/png",
            provider_id=self.provider_id,
        )
