from __future__ import annotations

import base64
import json

import httpx
import pytest

from vroom_cli.errors import ErrorKind, ProviderError
from vroom_cli.gen.classify import classify
from vroom_cli.gen.config import ProviderSettings
from vroom_cli.gen.providers.huggingface import HuggingFaceProvider
from vroom_cli.gen.providers.openai import OpenAIProvider
from vroom_cli.gen.providers.placeholder import PlaceholderProvider
from vroom_cli.gen.providers.stability import StabilityProvider
from vroom_cli.gen.providers.transport import network_code_from_exception

PNG = b"\x89PNG\r\n\x1a\nfake"


def mock_client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestHuggingFaceProvider:
    def test_returns_raw_image_bytes(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, content=PNG, headers={"content-type": "image/jpeg"})

        provider = HuggingFaceProvider(None, client=mock_client(handler))
        result = provider.generate("a misty forest")

        assert result.image_bytes == PNG
        assert result.content_type == "image/jpeg"
        assert result.provider_id == "huggingface"
        assert seen["url"].endswith("/black-forest-labs/FLUX.1-schnell")
        assert seen["auth"] is None
        assert seen["body"] == {"inputs": "a misty forest"}

    def test_sends_token_and_custom_model(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, content=PNG)

        settings = ProviderSettings(model="stabilityai/sdxl", deadline_sec=45)
        provider = HuggingFaceProvider("hf_token", settings, client=mock_client(handler))
        provider.generate("x")

        assert seen["auth"] == "Bearer hf_token"
        assert seen["url"].endswith("/stabilityai/sdxl")
        assert provider.deadline == 45

    def test_model_loading_is_transient(self) -> None:
        provider = HuggingFaceProvider(
            None, client=mock_client(lambda r: httpx.Response(503, json={"error": "Model is loading"}))
        )
        with pytest.raises(ProviderError) as exc_info:
            provider.generate("x")
        assert exc_info.value.status_code == 503
        assert classify(exc_info.value).kind is ErrorKind.TRANSIENT


class TestOpenAIProvider:
    def test_decodes_b64_json(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers["authorization"]
            return httpx.Response(200, json={"data": [{"b64_json": base64.b64encode(PNG).decode()}]})

        provider = OpenAIProvider("sk-test", client=mock_client(handler))
        result = provider.generate("modern office")

        assert result.image_bytes == PNG
        assert result.content_type == "image/png"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["model"] == "dall-e-3"
        assert seen["body"]["response_format"] == "b64_json"
        assert provider.deadline == 60

    def test_rate_limit_carries_retry_after(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                429, headers={"retry-after": "20"}, json={"error": {"message": "Rate limit reached"}}
            )

        provider = OpenAIProvider("sk-test", client=mock_client(handler))
        with pytest.raises(ProviderError) as exc_info:
            provider.generate("x")

        classified = classify(exc_info.value)
        assert classified.kind is ErrorKind.RATE_LIMITED
        assert classified.retry_after == 20

    def test_content_policy_hint(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                400,
                json={"error": {"message": "Your request was rejected as a result of our content_policy_violation"}},
            )

        provider = OpenAIProvider("sk-test", client=mock_client(handler))
        with pytest.raises(ProviderError) as exc_info:
            provider.generate("x")

        classified = classify(exc_info.value)
        assert classified.kind is ErrorKind.PERMANENT
        assert "content policy" in classified.user_message

    def test_missing_image_data_is_unknown(self) -> None:
        provider = OpenAIProvider("sk-test", client=mock_client(lambda r: httpx.Response(200, json={"data": []})))
        with pytest.raises(ProviderError) as exc_info:
            provider.generate("x")
        assert classify(exc_info.value).kind is ErrorKind.UNKNOWN


class TestStabilityProvider:
    def test_posts_multipart_and_returns_bytes(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["content_type"] = request.headers["content-type"]
            seen["accept"] = request.headers["accept"]
            seen["body"] = request.content
            return httpx.Response(200, content=PNG)

        provider = StabilityProvider("sk-stab", client=mock_client(handler))
        result = provider.generate("ocean waves")

        assert result.image_bytes == PNG
        assert seen["content_type"].startswith("multipart/form-data")
        assert seen["accept"] == "image/*"
        assert b"ocean waves" in seen["body"]
        assert provider.deadline == 90


class TestTransportErrors:
    def test_connect_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        provider = OpenAIProvider("sk-test", client=mock_client(handler))
        with pytest.raises(ProviderError) as exc_info:
            provider.generate("x")

        assert exc_info.value.network_code == "ETIMEDOUT"
        assert classify(exc_info.value).kind is ErrorKind.TRANSIENT

    def test_connection_refused(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

        provider = HuggingFaceProvider(None, client=mock_client(handler))
        with pytest.raises(ProviderError) as exc_info:
            provider.generate("x")
        assert exc_info.value.network_code == "ECONNREFUSED"

    @pytest.mark.parametrize(
        "exc, code",
        [
            (httpx.ReadTimeout("slow"), "ETIMEDOUT"),
            (httpx.RemoteProtocolError("peer closed"), "ECONNRESET"),
            (httpx.ConnectError("[Errno -2] Name or service not known"), "ENOTFOUND"),
            (httpx.ConnectError("something else"), None),
        ],
    )
    def test_network_code_mapping(self, exc: Exception, code) -> None:
        assert network_code_from_exception(exc) == code


class TestPlaceholderProvider:
    def test_generates_png(self) -> None:
        pytest.importorskip("PIL")
        provider = PlaceholderProvider()

        result = provider.generate("A treasure map")

        assert result.image_bytes.startswith(b"\x89PNG")
        assert result.provider_id == "placeholder"
        assert result.extension == ".png"

    def test_same_prompt_same_image(self) -> None:
        pytest.importorskip("PIL")
        provider = PlaceholderProvider()
        assert provider.generate("calm lake").image_bytes == provider.generate("calm lake").image_bytes
