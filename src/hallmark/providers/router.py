"""Provider router: primary first, fallback on failure, sticky on success.

Selection logic:
1. Call the primary through the retry policy
2. On failure, call the fallback through the retry policy
3. If the fallback answers, swap the selection so it leads from now on
4. If both fail, raise AllProvidersFailedError carrying both reasons
"""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable
from typing import Protocol, TypeVar

from hallmark.changelog import ChangelogOutput
from hallmark.config import Config
from hallmark.exceptions import RouterError
from hallmark.providers.base import (
    BackendError,
    Completion,
    ExecutionFailedError,
    GenerationAttempt,
    NonZeroExitError,
    NotInstalledError,
    Provider,
    ProviderSelection,
    RetriesExhaustedError,
)
from hallmark.providers.invoker import ProviderInvoker
from hallmark.providers.retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")

FallbackHandler = Callable[[Provider, Provider, BackendError], None]

_AUTH_PATTERN = re.compile(
    r"unauthori[sz]ed|\b401\b|\b403\b|not logged in|log ?in|authenticat|api[ _-]?key",
    re.IGNORECASE,
)


class ProviderRunner(Protocol):
    """What the router needs from an invoker."""

    async def invoke(self, provider: Provider, prompt: str) -> ChangelogOutput: ...

    async def invoke_raw(self, provider: Provider, prompt: str) -> str: ...


class AllProvidersFailedError(RouterError):
    """Both the primary and the fallback failed for one generation call."""

    def __init__(
        self,
        primary: Provider,
        primary_error: BackendError,
        fallback: Provider,
        fallback_error: BackendError,
    ):
        self.primary = primary
        self.primary_error = primary_error
        self.fallback = fallback
        self.fallback_error = fallback_error
        super().__init__(self.summary())

    def summary(self) -> str:
        return (
            f"Both LLM providers failed. {self.primary} error: "
            f"{self.primary_error.summary()}. {self.fallback} error: "
            f"{self.fallback_error.summary()}."
        )

    def detailed(self) -> str:
        return (
            f"Both LLM providers failed. {self.primary} error: "
            f"{self.primary_error.detail()}. {self.fallback} error: "
            f"{self.fallback_error.detail()}."
        )

    def remediation_hints(self) -> list[str]:
        """Install/authenticate hints derived from each provider's error kind."""
        hints: list[str] = []
        for error in (self.primary_error, self.fallback_error):
            hint = _remediation_hint(error)
            if hint and hint not in hints:
                hints.append(hint)
        return hints


def _remediation_hint(error: BackendError) -> str | None:
    cause = error.root_cause() if isinstance(error, RetriesExhaustedError) else error
    if isinstance(cause, NotInstalledError):
        return cause.provider.install_hint
    text = ""
    if isinstance(cause, NonZeroExitError):
        text = cause.stderr
    elif isinstance(cause, ExecutionFailedError):
        text = cause.message
    if text and _AUTH_PATTERN.search(text):
        if cause.provider is Provider.CLAUDE:
            return "Authenticate Claude Code CLI: run `claude login`"
        return "Authenticate Codex CLI: run `codex login` or set CODEX_API_KEY"
    return None


class ProviderRouter:
    """Routes generation requests across the selected provider pair.

    The router holds no selection of its own: callers pass the run's
    ProviderSelection into every call, and the router mutates it only to
    apply the stickiness rule.
    """

    def __init__(
        self,
        runner: ProviderRunner | None = None,
        *,
        policy: RetryPolicy | None = None,
        on_fallback: FallbackHandler | None = None,
    ):
        self._runner = runner or ProviderInvoker()
        self._policy = policy or RetryPolicy()
        self._on_fallback = on_fallback
        self._in_flight: set[int] = set()

    @classmethod
    def from_config(
        cls,
        config: Config,
        *,
        on_fallback: FallbackHandler | None = None,
    ) -> ProviderRouter:
        """Create a router backed by real subprocess invocations."""
        return cls(
            ProviderInvoker(config.providers),
            policy=RetryPolicy.from_config(config.retry),
            on_fallback=on_fallback,
        )

    async def generate_with_fallback(
        self,
        prompt: str,
        selection: ProviderSelection,
    ) -> Completion[ChangelogOutput]:
        """Generate changelog entries; see the module docstring for the rules."""
        return await self._try_with_fallback(prompt, selection, self._runner.invoke)

    async def generate_raw_with_fallback(
        self,
        prompt: str,
        selection: ProviderSelection,
    ) -> Completion[str]:
        """Same routing, but return the backend's unparsed text."""
        return await self._try_with_fallback(prompt, selection, self._runner.invoke_raw)

    async def _try_with_fallback(
        self,
        prompt: str,
        selection: ProviderSelection,
        call: Callable[[Provider, str], Awaitable[T]],
    ) -> Completion[T]:
        key = id(selection)
        if key in self._in_flight:
            raise RuntimeError("ProviderSelection is already in use by another call")
        self._in_flight.add(key)
        try:
            primary, fallback = selection.primary, selection.fallback
            attempts: list[GenerationAttempt] = []

            try:
                output = await self._call_provider(primary, prompt, call, attempts)
            except BackendError as e:
                primary_error = e
                logger.info("%s failed: %s", primary, primary_error.summary())
            else:
                return Completion(output=output, provider=primary, attempts=attempts)

            try:
                output = await self._call_provider(fallback, prompt, call, attempts)
            except BackendError as fallback_error:
                raise AllProvidersFailedError(
                    primary, primary_error, fallback, fallback_error,
                ) from fallback_error

            selection.swap()
            logger.warning(
                "%s failed, using %s instead (%s)",
                primary, fallback, primary_error.summary(),
            )
            if self._on_fallback is not None:
                self._on_fallback(primary, fallback, primary_error)
            return Completion(
                output=output,
                provider=fallback,
                primary_error=primary_error,
                attempts=attempts,
            )
        finally:
            self._in_flight.discard(key)

    async def _call_provider(
        self,
        provider: Provider,
        prompt: str,
        call: Callable[[Provider, str], Awaitable[T]],
        attempts: list[GenerationAttempt],
    ) -> T:
        async def _attempt() -> T:
            record = GenerationAttempt(provider=provider)
            attempts.append(record)
            record.begin()
            try:
                result = await call(provider, prompt)
            except BackendError as error:
                record.fail(error)
                raise
            record.succeed()
            return result

        return await with_retry(_attempt, policy=self._policy)
