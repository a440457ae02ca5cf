"""
Generate → preview → approve/reject → save workflow.

A sequential, user-paced state machine. Provider calls go through the
resilience wrapper; every preview resource is registered with the cleanup
registry before the user is asked to decide, and the registry is flushed on
every way out of ``run``.
"""
from __future__ import annotations

import logging
import time
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Protocol

from .cleanup import CleanupRegistry
from .errors import ClassifiedError, ErrorKind
from .gen.classify import classify
from .gen.provider import ImageProvider
from .gen.resilience import DEFAULT_POLICY, RetryPolicy, execute
from .gen.types import GenerationAttempt, GenerationResult

logger = logging.getLogger(__name__)


class WorkflowState(str, Enum):
    AWAITING_PROMPT = "awaiting_prompt"
    GENERATING = "generating"
    AWAITING_APPROVAL = "awaiting_approval"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({WorkflowState.COMPLETED, WorkflowState.CANCELLED, WorkflowState.FAILED})

CONTEXT_PREPARING = "while preparing the provider"
CONTEXT_GENERATING = "during image generation"
CONTEXT_PREVIEW = "while showing preview"
CONTEXT_SAVING = "while saving output"

_OPERATIONS = {
    CONTEXT_PREPARING: "preparing the provider",
    CONTEXT_GENERATING: "generating image",
    CONTEXT_PREVIEW: "showing preview",
    CONTEXT_SAVING: "saving output",
}


class Disposable(Protocol):
    def dispose(self) -> None: ...


class PreviewSink(Protocol):
    def show(self, image_bytes: bytes, content_type: str = ..., prompt: str = ...) -> Disposable: ...


class PersistenceSink(Protocol):
    def save(self, image_bytes: bytes, extension: str = ...) -> Path: ...


class PreferenceStore(Protocol):
    def set_last_used_service(self, provider_id: str) -> None: ...


class Interaction(Protocol):
    def ask_prompt(self) -> str: ...

    def confirm_approve(self) -> bool: ...

    def confirm_retry(self) -> bool: ...

    def ask_new_prompt(self, default: str) -> str: ...

    def notify(self, message: str) -> None: ...

    def status(self, message: str) -> AbstractContextManager[object]: ...


@dataclass
class WorkflowOutcome:
    state: WorkflowState
    path: Optional[Path] = None
    error: Optional[ClassifiedError] = None
    context: str = ""
    iterations: int = 0
    attempts: int = 0

    @property
    def user_message(self) -> str:
        if self.error is None:
            return ""
        return self.error.user_message

    def describe(self) -> str:
        if self.state is WorkflowState.COMPLETED:
            return f"Saved to {self.path}"
        if self.state is WorkflowState.CANCELLED:
            return "Generation cancelled."
        return f"Failed {self.context}: {self.user_message}"


@dataclass
class _Review:
    approved: bool
    next_prompt: Optional[str] = None


def _as_classified(exc: BaseException, context: str) -> ClassifiedError:
    if isinstance(exc, ClassifiedError):
        return exc
    user_message = getattr(exc, "user_message", None)
    if isinstance(user_message, str) and user_message:
        err = ClassifiedError(ErrorKind.PERMANENT, user_message, message=str(exc))
        err.__cause__ = exc
        return err
    return classify(exc, _OPERATIONS.get(context, "running the workflow"))


@dataclass
class GenerationWorkflow:
    providers: Callable[[str], ImageProvider]
    preview: PreviewSink
    persistence: PersistenceSink
    cleanup: CleanupRegistry
    interaction: Interaction
    policy: RetryPolicy = DEFAULT_POLICY
    preferences: Optional[PreferenceStore] = None
    preflight: Optional[Callable[[], object]] = None
    sleep: Callable[[float], None] = time.sleep
    history: list[WorkflowState] = field(default_factory=list, init=False)
    attempts: list[GenerationAttempt] = field(default_factory=list, init=False)

    @property
    def state(self) -> Optional[WorkflowState]:
        return self.history[-1] if self.history else None

    def _transition(self, state: WorkflowState) -> None:
        logger.debug("Workflow %s -> %s", self.state.value if self.state else "start", state.value)
        self.history.append(state)

    def _read_prompt(self, ask: Callable[[], str]) -> str:
        while True:
            prompt = ask().strip()
            if prompt:
                return prompt
            self.interaction.notify("Prompt cannot be empty.")

    def run(self, initial_prompt: Optional[str], provider_id: str) -> WorkflowOutcome:
        """Drive the workflow to a terminal state.

        Failures are returned as a FAILED outcome carrying the deepest classified
        error. Signals (SystemExit/KeyboardInterrupt) still flush cleanup and mark
        the run FAILED before propagating.
        """
        if initial_prompt is not None and not initial_prompt.strip():
            raise ValueError("initial prompt cannot be empty")

        self.history = []
        self.attempts = []
        self._transition(WorkflowState.AWAITING_PROMPT)
        context = CONTEXT_PREPARING
        iterations = 0
        try:
            if self.preflight is not None:
                self.preflight()
            provider = self.providers(provider_id)
            prompt = initial_prompt.strip() if initial_prompt else self._read_prompt(self.interaction.ask_prompt)

            while True:
                iterations += 1
                context = CONTEXT_GENERATING
                self._transition(WorkflowState.GENERATING)
                result = self._generate(provider, prompt)

                context = CONTEXT_PREVIEW
                self._transition(WorkflowState.AWAITING_APPROVAL)
                review = self._review(result, prompt)

                if review.approved:
                    context = CONTEXT_SAVING
                    self._transition(WorkflowState.PERSISTING)
                    path = self.persistence.save(result.image_bytes, result.extension)
                    del result
                    self._record_last_used(provider.provider_id)
                    self._transition(WorkflowState.COMPLETED)
                    return WorkflowOutcome(
                        WorkflowState.COMPLETED, path=path, iterations=iterations, attempts=len(self.attempts)
                    )

                if review.next_prompt is None:
                    self._transition(WorkflowState.CANCELLED)
                    return WorkflowOutcome(WorkflowState.CANCELLED, iterations=iterations, attempts=len(self.attempts))

                prompt = review.next_prompt
        except Exception as e:
            error = _as_classified(e, context)
            logger.debug("Workflow failed %s: %s", context, error, exc_info=True)
            self.cleanup.flush()
            self._transition(WorkflowState.FAILED)
            return WorkflowOutcome(
                WorkflowState.FAILED,
                error=error,
                context=context,
                iterations=iterations,
                attempts=len(self.attempts),
            )
        except BaseException:
            self.cleanup.flush()
            self._transition(WorkflowState.FAILED)
            raise
        finally:
            self.cleanup.flush()

    def _generate(self, provider: ImageProvider, prompt: str) -> GenerationResult:
        with self.interaction.status(f"Generating image with {provider.provider_id}..."):
            result = execute(
                lambda: provider.generate(prompt),
                provider.deadline,
                self.policy,
                provider_id=provider.provider_id,
                prompt=prompt,
                sleep=self.sleep,
                on_attempt=self.attempts.append,
            )
        self.interaction.notify("Image generated")
        return result

    def _review(self, result: GenerationResult, prompt: str) -> _Review:
        handle = self.preview.show(result.image_bytes, result.content_type, prompt)
        entry_id = self.cleanup.register(handle.dispose)
        try:
            if self.interaction.confirm_approve():
                return _Review(approved=True)
            if not self.interaction.confirm_retry():
                return _Review(approved=False)
            new_prompt = self._read_prompt(lambda: self.interaction.ask_new_prompt(prompt))
            return _Review(approved=False, next_prompt=new_prompt)
        finally:
            self.cleanup.dispose(entry_id)

    def _record_last_used(self, provider_id: str) -> None:
        if self.preferences is None:
            return
        try:
            self.preferences.set_last_used_service(provider_id)
        except OSError as e:
            logger.warning("Could not remember last used provider: %s", e)
