"""
Hugging Face Inference provider.

Works without a token on the free tier, which is slow under load, hence the
long deadline.
"""
from __future__ import annotations

from typing import Optional

import httpx

from ..config import ProviderSettings
from ..provider import ImageProvider
from ..types import GenerationResult
from .transport import make_client, send

API_URL = "https://router.huggingface.co/hf-inference/models"
DEFAULT_MODEL = "black-forest-labs/FLUX.1-schnell"
DEFAULT_DEADLINE = 120.0


def _hint(status: int, message: str) -> Optional[str]:
    if status == 400 or "content policy" in message.lower():
        return (
            "Your prompt may violate content policy. Try rephrasing to avoid explicit, "
            "violent, or copyrighted content."
        )
    if status == 401:
        return "Invalid Hugging Face token. Create one at https://huggingface.co/settings/tokens"
    return None


class HuggingFaceProvider(ImageProvider):
    def __init__(
        self,
        api_key: Optional[str] = None,
        settings: Optional[ProviderSettings] = None,
        client: Optional[httpx.Client] = None,
    ):
        settings = settings or ProviderSettings()
        self._api_key = api_key
        self._model = settings.model or DEFAULT_MODEL
        self._deadline = settings.deadline_sec or DEFAULT_DEADLINE
        self._client = make_client(self._deadline, client)

    @property
    def provider_id(self) -> str:
        return "huggingface"

    @property
    def deadline(self) -> float:
        return self._deadline

    def generate(self, prompt: str) -> GenerationResult:
        headers = {"Accept": "image/png"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        response = send(
            self._client,
            self.provider_id,
            "POST",
            f"{API_URL}/{self._model}",
            hint_for=_hint,
            headers=headers,
            json={"inputs": prompt},
        )
        content_type = response.headers.get("content-type", "image/png").split(";")[0].strip()
        return GenerationResult(
            image_bytes=response.content,
            content_type=content_type,
            provider_id=self.provider_id,
        )
