"""Hallmark exception hierarchy.

Provides a structured exception tree so catch blocks can be specific
and callers can distinguish between different failure modes.
"""

from __future__ import annotations


class HallmarkError(Exception):
    """Base for all Hallmark exceptions."""


class ProviderError(HallmarkError):
    """A single backend failed: missing, crashed, timed out, bad output."""


class RouterError(HallmarkError):
    """Every configured backend failed for one generation call."""


class VerificationError(HallmarkError):
    """Evidence gathering could not produce a complete report."""


class RunDeadlineExceededError(VerificationError):
    """The caller's run deadline expired; partial results were discarded."""

    def __init__(self, deadline_seconds: float, stage: str = ""):
        self.deadline_seconds = deadline_seconds
        self.stage = stage
        where = f" during {stage}" if stage else ""
        super().__init__(
            f"Run deadline of {deadline_seconds:g}s exceeded{where}"
        )
