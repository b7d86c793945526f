"""Release-note pipeline: generate with fallback, then verify against the repo.

The caller owns the ProviderSelection and passes it in; when the fallback
provider rescues a call, the selection comes back swapped so later runs
start with the provider that worked.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from hallmark.changelog import ChangelogOutput
from hallmark.config import Config
from hallmark.exceptions import RunDeadlineExceededError
from hallmark.providers.base import BackendError, Provider, ProviderSelection
from hallmark.providers.router import FallbackHandler, ProviderRouter
from hallmark.verification.engine import VerificationEngine
from hallmark.verification.evidence import VerificationReport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationResult:
    """Generated changelog plus its evidence report (None when not verified)."""

    output: ChangelogOutput
    provider: Provider
    primary_error: BackendError | None = None
    report: VerificationReport | None = None

    @property
    def used_fallback(self) -> bool:
        return self.primary_error is not None

    def to_dict(self) -> dict:
        return {
            "provider": self.provider.value,
            "used_fallback": self.used_fallback,
            "primary_error": self.primary_error.summary() if self.primary_error else None,
            "entries": self.output.to_dict()["entries"],
            "verification": self.report.to_dict() if self.report else None,
        }


class ReleaseNotePipeline:
    """Generate changelog entries and annotate them with evidence."""

    def __init__(
        self,
        router: ProviderRouter,
        verifier: VerificationEngine | None = None,
    ):
        self.router = router
        self.verifier = verifier or VerificationEngine()

    @classmethod
    def from_config(
        cls,
        config: Config,
        *,
        on_fallback: FallbackHandler | None = None,
    ) -> ReleaseNotePipeline:
        return cls(
            ProviderRouter.from_config(config, on_fallback=on_fallback),
            VerificationEngine(config.verification),
        )

    async def run(
        self,
        prompt: str,
        selection: ProviderSelection,
        repo_root: Path,
        *,
        verify: bool = True,
        deadline: float | None = None,
    ) -> GenerationResult:
        """Run generation then verification within an optional deadline.

        When ``deadline`` seconds elapse, in-flight subprocesses and scans
        are cancelled, partial results are dropped, and
        RunDeadlineExceededError is raised.
        """
        if deadline is not None and deadline <= 0:
            raise ValueError("deadline must be positive")

        stage = "generation"
        timeout = asyncio.timeout(deadline)
        try:
            async with timeout:
                completion = await self.router.generate_with_fallback(prompt, selection)
                logger.info(
                    "Generated %d entries with %s",
                    len(completion.output.entries), completion.provider,
                )
                report = None
                if verify:
                    stage = "verification"
                    report = await self.verifier.verify(
                        completion.output.entries, repo_root,
                    )
        except TimeoutError as e:
            if timeout.expired():
                raise RunDeadlineExceededError(deadline or 0.0, stage) from e
            raise

        return GenerationResult(
            output=completion.output,
            provider=completion.provider,
            primary_error=completion.primary_error,
            report=report,
        )
