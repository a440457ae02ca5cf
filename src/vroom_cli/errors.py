from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Normalized failure kinds used for retry policy and user messaging."""

    PERMANENT = "permanent"  # bad credentials / request, never retried
    TRANSIENT = "transient"  # 5xx, connectivity
    RATE_LIMITED = "rate_limited"  # 429, retried with optional retry-after hint
    TIMEOUT = "timeout"  # bounded wait exceeded, retried like transient
    UNKNOWN = "unknown"  # unclassified, never retried

    @property
    def retryable(self) -> bool:
        return self in RETRYABLE_KINDS


RETRYABLE_KINDS = frozenset({ErrorKind.TRANSIENT, ErrorKind.RATE_LIMITED, ErrorKind.TIMEOUT})


class VroomError(Exception):
    """Base exception for all vroom errors."""


class ConfigError(VroomError):
    def __init__(self, message: str, path: Optional[Path] = None, line: Optional[int] = None):
        self.path = path
        self.line = line
        if path:
            loc = f"{path}"
            if line:
                loc += f":{line}"
            message = f"{loc}: {message}"
        super().__init__(message)


class ProviderError(VroomError):
    """Raw failure raised by a provider adapter.

    Carries just enough for classification: an optional HTTP status, an optional
    low-level network code (``ETIMEDOUT``, ``ECONNREFUSED``, ...) and the vendor's
    retry-after hint in seconds. ``hint`` is vendor-specific guidance that may be
    shown to the user instead of the generic template.
    """

    def __init__(
        self,
        message: str,
        *,
        provider_id: str = "",
        status_code: Optional[int] = None,
        network_code: Optional[str] = None,
        retry_after: Optional[float] = None,
        hint: Optional[str] = None,
    ):
        super().__init__(message)
        self.provider_id = provider_id
        self.status_code = status_code
        self.network_code = network_code
        self.retry_after = retry_after
        self.hint = hint


class ClassifiedError(VroomError):
    """A failure after classification.

    A single tagged type: callers read ``kind`` and ``user_message`` rather than
    dispatching on subclasses. ``str()`` keeps the technical message for logs.
    """

    def __init__(
        self,
        kind: ErrorKind,
        user_message: str,
        *,
        message: Optional[str] = None,
        retry_after: Optional[float] = None,
        provider_id: str = "",
        detail: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message or user_message)
        self.kind = kind
        self.user_message = user_message
        self.retry_after = retry_after if kind is ErrorKind.RATE_LIMITED else None
        self.provider_id = provider_id
        self.detail = detail or {}

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def __repr__(self) -> str:
        return f"ClassifiedError(kind={self.kind.value!r}, user_message={self.user_message!r})"
