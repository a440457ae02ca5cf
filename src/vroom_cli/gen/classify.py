"""
Failure classification for provider calls.

Maps a raw provider failure (HTTP status and/or low-level network code) to an
``ErrorKind`` plus a human-actionable message. Pure functions, no I/O.
"""
from __future__ import annotations

import errno
import socket
from typing import Any, Optional

from ..errors import ClassifiedError, ErrorKind, ProviderError
from ..store import API_KEY_NAMES

DEFAULT_OPERATION = "generating image"

PERMANENT_STATUSES = frozenset({400, 401, 403})
RATE_LIMIT_STATUS = 429
TRANSIENT_STATUSES = frozenset({500, 502, 503})

# Connectivity faults that are expected to clear on retry
TRANSIENT_NETWORK_CODES = frozenset({"ETIMEDOUT", "ECONNREFUSED", "ECONNRESET"})
DNS_NETWORK_CODES = frozenset({"ENOTFOUND", "EAI_AGAIN"})

NETWORK_MESSAGES = {
    "ETIMEDOUT": "Network timeout while {op}. Check your internet connection and try again.",
    "ECONNREFUSED": "Connection refused while {op}. The service may be temporarily unavailable.",
    "ECONNRESET": "Connection reset while {op}. The service may be experiencing issues.",
    "ENOTFOUND": "DNS lookup failed while {op}. Check your internet connection.",
    "EAI_AGAIN": "DNS lookup timeout while {op}. Check your DNS settings.",
}

_ERRNO_CODES = {
    errno.ETIMEDOUT: "ETIMEDOUT",
    errno.ECONNREFUSED: "ECONNREFUSED",
    errno.ECONNRESET: "ECONNRESET",
}

_GAI_CODES = {
    socket.EAI_NONAME: "ENOTFOUND",
    socket.EAI_AGAIN: "EAI_AGAIN",
}


def _status_of(raw: BaseException) -> Optional[int]:
    for attr in ("status_code", "status"):
        value = getattr(raw, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(raw, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def _network_code_of(raw: BaseException) -> Optional[str]:
    code = getattr(raw, "network_code", None)
    if isinstance(code, str) and code:
        return code.upper()
    if isinstance(raw, socket.gaierror):
        return _GAI_CODES.get(raw.errno, "ENOTFOUND")
    if isinstance(raw, TimeoutError):
        return "ETIMEDOUT"
    if isinstance(raw, OSError) and raw.errno in _ERRNO_CODES:
        return _ERRNO_CODES[raw.errno]
    return None


def parse_retry_after(value: Any) -> Optional[float]:
    """Parse a vendor retry-after hint given in seconds.

    Anything unparseable or non-positive means "no hint" and is never an error.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        seconds = float(str(value).strip())
    except ValueError:
        return None
    if seconds <= 0:
        return None
    return seconds


def _retry_after_of(raw: BaseException) -> Optional[float]:
    hint = parse_retry_after(getattr(raw, "retry_after", None))
    if hint is not None:
        return hint
    response = getattr(raw, "response", None)
    headers = getattr(response, "headers", None)
    if headers is not None:
        return parse_retry_after(headers.get("retry-after"))
    return None


def _permanent_message(status: int, provider: str, op: str) -> str:
    if status == 401:
        key_name = API_KEY_NAMES.get(provider)
        fix = f" (set it with: vroom config set {key_name} YOUR_KEY)" if key_name else ""
        return f"Authorization failed while {op}. Check your API key for {provider}{fix}."
    if status == 403:
        return f"Access denied while {op}. Your {provider} account may lack permission for this model."
    return f"The request was rejected by {provider} while {op}. Try rephrasing your prompt."


def _rate_limit_message(provider: str, retry_after: Optional[float]) -> str:
    if retry_after is not None:
        wait = f"Rate limit will reset in {retry_after:g} seconds."
    else:
        wait = "Please wait a few minutes before trying again."
    return f"You've exceeded the rate limit for {provider}. {wait}"


def classify(raw: BaseException, operation: str = DEFAULT_OPERATION) -> ClassifiedError:
    """Classify a raw provider failure.

    Already-classified errors pass through unchanged.
    """
    if isinstance(raw, ClassifiedError):
        return raw

    provider = getattr(raw, "provider_id", "") or "the image service"
    hint = raw.hint if isinstance(raw, ProviderError) else None
    status = _status_of(raw)
    network_code = _network_code_of(raw)
    detail: dict[str, Any] = {"status_code": status, "network_code": network_code}

    def _make(kind: ErrorKind, user_message: str, retry_after: Optional[float] = None) -> ClassifiedError:
        err = ClassifiedError(
            kind,
            user_message,
            message=f"{type(raw).__name__}: {raw}",
            retry_after=retry_after,
            provider_id=getattr(raw, "provider_id", ""),
            detail=detail,
        )
        err.__cause__ = raw
        return err

    if status is not None:
        if status in PERMANENT_STATUSES:
            return _make(ErrorKind.PERMANENT, hint or _permanent_message(status, provider, operation))
        if status == RATE_LIMIT_STATUS:
            retry_after = _retry_after_of(raw)
            return _make(ErrorKind.RATE_LIMITED, _rate_limit_message(provider, retry_after), retry_after)
        if status in TRANSIENT_STATUSES:
            return _make(
                ErrorKind.TRANSIENT,
                f"{provider} is temporarily unavailable while {operation}. Please try again shortly.",
            )
    elif network_code is not None:
        if network_code in TRANSIENT_NETWORK_CODES or network_code in DNS_NETWORK_CODES:
            return _make(ErrorKind.TRANSIENT, NETWORK_MESSAGES[network_code].format(op=operation))

    return _make(ErrorKind.UNKNOWN, f"Unexpected error while {operation}: {raw}")


def timeout_error(deadline: float, provider_id: str = "", operation: str = DEFAULT_OPERATION) -> ClassifiedError:
    """Error produced when a single attempt exceeds its deadline."""
    return ClassifiedError(
        ErrorKind.TIMEOUT,
        f"{operation[:1].upper()}{operation[1:]} took longer than {deadline:g} seconds. "
        "Try a simpler prompt or check your network connection.",
        message=f"Operation timed out after {deadline:g}s",
        provider_id=provider_id,
        detail={"deadline_sec": deadline},
    )
