"""
Resilience wrapper for provider calls.

Each attempt races the provider call against its deadline; failures are
classified and only transient, rate-limited and timed-out attempts are retried,
with capped exponential backoff plus jitter between attempts.
"""
from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from ..errors import ClassifiedError
from .classify import DEFAULT_OPERATION, classify, timeout_error
from .types import GenerationAttempt

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 2
    initial_delay: float = 1.0
    max_delay: float = 10.0
    jitter: float = 0.3

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")
        if not 0 <= self.jitter <= 1:
            raise ValueError("jitter must be between 0 and 1")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


DEFAULT_POLICY = RetryPolicy()


def compute_delay(
    attempt: int,
    policy: RetryPolicy,
    rng: Callable[[], float] = random.random,
    retry_after: Optional[float] = None,
) -> float:
    """Seconds to wait after failed ``attempt`` (1-based) before the next one.

    ``min(max_delay, initial_delay * 2**(attempt-1))`` plus up to ``jitter`` of
    that value. A vendor retry-after hint raises the wait, bounded by ``max_delay``.
    """
    delay = min(policy.max_delay, policy.initial_delay * (2 ** (attempt - 1)))
    delay += delay * policy.jitter * rng()
    if retry_after is not None:
        delay = max(delay, min(retry_after, policy.max_delay))
    return delay


def call_with_deadline(
    operation: Callable[[], T],
    deadline: float,
    provider_id: str = "",
    operation_name: str = DEFAULT_OPERATION,
) -> T:
    """Run ``operation`` in a daemon worker and wait at most ``deadline`` seconds.

    On timeout the worker is abandoned, not killed; whatever it eventually
    returns is dropped.
    """
    outcome: dict[str, Any] = {}
    done = threading.Event()

    def _target() -> None:
        try:
            outcome["value"] = operation()
        except BaseException as e:
            outcome["error"] = e
        finally:
            done.set()

    worker = threading.Thread(target=_target, name=f"vroom-attempt-{provider_id or 'op'}", daemon=True)
    worker.start()
    if not done.wait(deadline):
        raise timeout_error(deadline, provider_id=provider_id, operation=operation_name)
    if "error" in outcome:
        raise outcome["error"]
    return outcome["value"]


def execute(
    operation: Callable[[], T],
    deadline: float,
    policy: RetryPolicy = DEFAULT_POLICY,
    *,
    provider_id: str = "",
    prompt: str = "",
    operation_name: str = DEFAULT_OPERATION,
    sleep: Callable[[float], None] = time.sleep,
    on_attempt: Optional[Callable[[GenerationAttempt], None]] = None,
    rng: Callable[[], float] = random.random,
) -> T:
    """Call ``operation`` with a per-attempt deadline and classified retries.

    Between attempts it sleeps for ``compute_delay``. When a rate-limited
    failure carries a retry-after hint, the wait is raised to that hint
    (capped at ``policy.max_delay``), so it can exceed the plain
    exponential schedule.

    Raises:
        ClassifiedError: the first permanent/unknown failure, or the last
            retryable one once all ``policy.max_attempts`` attempts are used.
    """
    if deadline <= 0:
        raise ValueError("deadline must be positive")

    last_error: Optional[ClassifiedError] = None
    for attempt_number in range(1, policy.max_attempts + 1):
        attempt = GenerationAttempt(
            prompt=prompt,
            provider_id=provider_id,
            deadline=deadline,
            attempt_number=attempt_number,
        )
        logger.debug(
            "Attempt %d/%d with %s (deadline %.0fs)",
            attempt.attempt_number,
            policy.max_attempts,
            provider_id or "operation",
            deadline,
        )
        if on_attempt is not None:
            on_attempt(attempt)
        try:
            return call_with_deadline(operation, attempt.deadline, provider_id, operation_name)
        except Exception as e:
            last_error = classify(e, operation_name)

        if not last_error.retryable:
            logger.debug("Not retrying %s failure: %s", last_error.kind.value, last_error)
            raise last_error
        if attempt_number == policy.max_attempts:
            break

        delay = compute_delay(attempt_number, policy, rng, last_error.retry_after)
        logger.warning(
            "Retry attempt %d/%d after %.1fs: %s",
            attempt_number,
            policy.max_retries,
            delay,
            last_error.user_message,
        )
        sleep(delay)

    assert last_error is not None
    raise last_error
