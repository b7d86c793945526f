"""Backend identities, selection state, and the typed provider errors.

The set of backends is closed: every provider is an external command-line
tool with the same contract (prompt in, structured changelog JSON out), so
the router dispatches on the ``Provider`` enum instead of a class hierarchy.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

from hallmark.exceptions import ProviderError
from hallmark.utils.text import truncate_chars

T = TypeVar("T")


class Provider(Enum):
    """Supported generation backends."""

    CLAUDE = "claude"
    CODEX = "codex"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @property
    def default_command(self) -> str:
        return self.value

    @property
    def install_hint(self) -> str:
        if self is Provider.CLAUDE:
            return (
                "Install Claude Code CLI: npm install -g @anthropic-ai/claude-code "
                "(then run `claude login`)"
            )
        return (
            "Install Codex CLI: npm install -g @openai/codex "
            "(then run `codex` or set CODEX_API_KEY)"
        )

    @property
    def other(self) -> Provider:
        return Provider.CODEX if self is Provider.CLAUDE else Provider.CLAUDE

    @classmethod
    def parse(cls, value: str) -> Provider:
        normalized = str(value or "").strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        raise ValueError(f"Unknown provider: {value}")

    def __str__(self) -> str:
        return self.display_name


@dataclass
class ProviderSelection:
    """Primary + fallback pair for one run.

    The router is the only writer: after a fallback succeeds it calls
    ``swap()`` so the working backend is tried first for the rest of the run.
    """

    primary: Provider = Provider.CLAUDE
    fallback: Provider = Provider.CODEX

    def __post_init__(self) -> None:
        if self.primary is self.fallback:
            raise ValueError("primary and fallback providers must differ")

    @classmethod
    def from_primary(cls, primary: Provider) -> ProviderSelection:
        return cls(primary=primary, fallback=primary.other)

    def swap(self) -> None:
        self.primary, self.fallback = self.fallback, self.primary


class AttemptState(Enum):
    NOT_STARTED = "not_started"
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class AttemptOutcome(Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    NON_ZERO_EXIT = "non_zero_exit"
    INVALID_JSON = "invalid_json"
    NOT_INSTALLED = "not_installed"
    SPAWN_FAILED = "spawn_failed"
    EXECUTION_FAILED = "execution_failed"


@dataclass
class GenerationAttempt:
    """One backend invocation, from spawn to success or typed failure."""

    provider: Provider
    state: AttemptState = AttemptState.NOT_STARTED
    outcome: AttemptOutcome | None = None
    started_at: float = 0.0
    elapsed_seconds: float = 0.0

    def begin(self) -> None:
        if self.state is not AttemptState.NOT_STARTED:
            raise RuntimeError(f"attempt already {self.state.value}")
        self.state = AttemptState.ATTEMPTING
        self.started_at = time.monotonic()

    def succeed(self) -> None:
        self._finish(AttemptState.SUCCEEDED, AttemptOutcome.SUCCESS)

    def fail(self, error: BaseException) -> None:
        outcome = getattr(error, "outcome", None)
        if not isinstance(outcome, AttemptOutcome):
            outcome = AttemptOutcome.EXECUTION_FAILED
        self._finish(AttemptState.FAILED, outcome)

    def _finish(self, state: AttemptState, outcome: AttemptOutcome) -> None:
        if self.state is not AttemptState.ATTEMPTING:
            raise RuntimeError(f"cannot finish an attempt that is {self.state.value}")
        self.state = state
        self.outcome = outcome
        self.elapsed_seconds = max(0.0, time.monotonic() - self.started_at)


@dataclass
class Completion(Generic[T]):
    """Successful generation with the provider that produced it.

    ``primary_error`` is set when the primary failed and the fallback
    answered instead.
    """

    output: T
    provider: Provider
    primary_error: BackendError | None = None
    attempts: list[GenerationAttempt] = field(default_factory=list)

    @property
    def used_fallback(self) -> bool:
        return self.primary_error is not None


class BackendError(ProviderError):
    """A typed failure of one provider.

    ``summary()`` is the concise user-facing line; ``detail()`` carries
    diagnostics such as raw stderr and is only shown in verbose mode.
    """

    outcome: AttemptOutcome = AttemptOutcome.EXECUTION_FAILED

    def __init__(self, provider: Provider, message: str):
        super().__init__(message)
        self.provider = provider

    def summary(self) -> str:
        return str(self)

    def detail(self) -> str:
        return str(self)


class NotInstalledError(BackendError):
    outcome = AttemptOutcome.NOT_INSTALLED

    def __init__(self, provider: Provider, command: str = ""):
        self.command = command or provider.default_command
        super().__init__(provider, f"{provider} CLI not found")

    def detail(self) -> str:
        return (
            f"{self.provider} CLI '{self.command}' was not found on PATH. "
            f"{self.provider.install_hint}"
        )


class SpawnFailedError(BackendError):
    outcome = AttemptOutcome.SPAWN_FAILED

    def __init__(self, provider: Provider, reason: str):
        self.reason = reason
        super().__init__(provider, f"Failed to start {provider} CLI")

    def detail(self) -> str:
        return f"Failed to spawn {self.provider} process: {self.reason}"


class ProviderTimeoutError(BackendError):
    outcome = AttemptOutcome.TIMEOUT

    def __init__(self, provider: Provider, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(provider, f"{provider} timed out after {timeout_seconds:g}s")


class NonZeroExitError(BackendError):
    outcome = AttemptOutcome.NON_ZERO_EXIT

    def __init__(self, provider: Provider, code: int, stderr: str = ""):
        self.code = code
        self.stderr = stderr
        super().__init__(provider, f"{provider} CLI exited with code {code}")

    def detail(self) -> str:
        stderr = self.stderr.strip()
        if not stderr:
            return f"{self.provider} CLI exited with code {self.code}"
        return f"{self.provider} CLI exited with code {self.code}: {stderr}"


class InvalidJsonError(BackendError):
    outcome = AttemptOutcome.INVALID_JSON

    def __init__(self, provider: Provider, reason: str, content: str = ""):
        self.reason = reason
        self.content = content
        super().__init__(provider, f"{provider} returned invalid JSON")

    def detail(self) -> str:
        if not self.content:
            return f"{self.provider} returned invalid JSON: {self.reason}"
        return (
            f"{self.provider} returned invalid JSON: {self.reason}. "
            f"Content: {truncate_chars(self.content, 500)}"
        )


class ExecutionFailedError(BackendError):
    """The CLI ran to completion but reported an error in its own envelope."""

    outcome = AttemptOutcome.EXECUTION_FAILED

    def __init__(self, provider: Provider, message: str):
        self.message = message
        super().__init__(provider, f"{provider} CLI reported an error")

    def detail(self) -> str:
        return f"{self.provider} CLI failed to execute: {self.message}"


class RetriesExhaustedError(BackendError):
    def __init__(self, provider: Provider, last_error: BackendError, attempts: int):
        self.last_error = last_error
        self.attempts = attempts
        self.outcome = last_error.outcome
        super().__init__(provider, f"{provider} failed after {attempts} attempts")

    def summary(self) -> str:
        return f"{self} ({self.last_error.summary()})"

    def detail(self) -> str:
        return f"All {self.attempts} attempts failed: {self.last_error.detail()}"

    def root_cause(self) -> BackendError:
        return self.last_error
