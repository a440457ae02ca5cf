"""
Shared httpx plumbing for the HTTP provider adapters.

Turns httpx transport failures and non-2xx responses into ProviderError with
the status code, network code and retry-after hint the classifier reads.
"""
from __future__ import annotations

import socket
from typing import Any, Callable, Optional

import httpx

from ...errors import ProviderError
from ..classify import parse_retry_after

# Extra seconds on the client timeout so the attempt deadline fires first.
CLIENT_TIMEOUT_SLACK = 5.0

HintFn = Callable[[int, str], Optional[str]]


def network_code_from_exception(exc: BaseException) -> Optional[str]:
    if isinstance(exc, httpx.TimeoutException):
        return "ETIMEDOUT"
    if isinstance(exc, (httpx.RemoteProtocolError, httpx.ReadError, httpx.WriteError)):
        return "ECONNRESET"
    if isinstance(exc, httpx.ConnectError):
        cause = exc.__cause__ or exc.__context__
        while cause is not None:
            if isinstance(cause, socket.gaierror):
                return "EAI_AGAIN" if cause.errno == socket.EAI_AGAIN else "ENOTFOUND"
            if isinstance(cause, ConnectionRefusedError):
                return "ECONNREFUSED"
            if isinstance(cause, ConnectionResetError):
                return "ECONNRESET"
            cause = cause.__cause__ or cause.__context__
        text = str(exc).lower()
        if "name or service not known" in text or "nodename nor servname" in text or "getaddrinfo" in text:
            return "ENOTFOUND"
        if "refused" in text:
            return "ECONNREFUSED"
        if "reset" in text:
            return "ECONNRESET"
    return None


def error_message(response: httpx.Response) -> str:
    """Best-effort vendor error text, for logs only."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str):
            return err
        for key in ("message", "detail", "errors", "name"):
            if body.get(key):
                return str(body[key])
    return str(body)[:200]


def make_client(timeout: float, client: Optional[httpx.Client] = None) -> httpx.Client:
    if client is not None:
        return client
    return httpx.Client(timeout=timeout + CLIENT_TIMEOUT_SLACK)


def send(
    client: httpx.Client,
    provider_id: str,
    method: str,
    url: str,
    *,
    hint_for: Optional[HintFn] = None,
    **kwargs: Any,
) -> httpx.Response:
    try:
        response = client.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        raise ProviderError(
            f"{provider_id} request failed: {e}",
            provider_id=provider_id,
            network_code=network_code_from_exception(e),
        ) from e

    if response.is_success:
        return response

    message = error_message(response)
    raise ProviderError(
        f"{provider_id} returned HTTP {response.status_code}: {message}",
        provider_id=provider_id,
        status_code=response.status_code,
        retry_after=parse_retry_after(response.headers.get("retry-after")),
        hint=hint_for(response.status_code, message) if hint_for else None,
    )
