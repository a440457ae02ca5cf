"""
OpenAI DALL-E 3 provider.
"""
from __future__ import annotations

import base64
import binascii
from typing import Optional

import httpx

from ...errors import ProviderError
from ..config import ProviderSettings
from ..provider import ImageProvider
from ..types import GenerationResult
from .transport import make_client, send

API_URL = "https://api.openai.com/v1/images/generations"
DEFAULT_MODEL = "dall-e-3"
DEFAULT_SIZE = "1024x1024"
DEFAULT_DEADLINE = 60.0


def _hint(status: int, message: str) -> Optional[str]:
    lowered = message.lower()
    if status == 401:
        return "Invalid OpenAI API key. Get your API key from https://platform.openai.com/api-keys"
    if status == 400 and ("content_policy" in lowered or "content policy" in lowered):
        return (
            "Your prompt violates OpenAI content policy. "
            "Try rephrasing to avoid explicit or harmful content."
        )
    if status == 403 and "billing" in lowered:
        return "OpenAI billing is not set up. Check https://platform.openai.com/account/billing"
    return None


class OpenAIProvider(ImageProvider):
    def __init__(
        self,
        api_key: str,
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
        return "openai"

    @property
    def deadline(self) -> float:
        return self._deadline

    def generate(self, prompt: str) -> GenerationResult:
        response = send(
            self._client,
            self.provider_id,
            "POST",
            API_URL,
            hint_for=_hint,
            headers={"Authorization": f"Bearer {self._api_key}"},
            json={
                "model": self._model,
                "prompt": prompt,
                "n": 1,
                "size": DEFAULT_SIZE,
                "response_format": "b64_json",
            },
        )

        try:
            b64 = response.json()["data"][0]["b64_json"]
            image_bytes = base64.b64decode(b64)
        except (ValueError, KeyError, IndexError, TypeError, binascii.Error) as e:
            raise ProviderError(
                f"No image data returned from OpenAI: {e}",
                provider_id=self.provider_id,
            ) from e

        return GenerationResult(
            image_bytes=image_bytes,
            content_type="image/png",
            provider_id=self.provider_id,
        )
