"""Confidence scoring for generated changelog entries.

Every entry starts at 100. Each penalty source deducts its configured
magnitude once per occurrence, and the result is clamped to [0, 100].
Each source that actually deducted something adds one warning, so an
entry has warnings exactly when its score was reduced.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from hallmark.config import PenaltyConfig
from hallmark.verification.evidence import CountCheck, KeywordMatch, ScanSummary
from hallmark.verification.stubs import StubFinding

MAX_CONFIDENCE = 100


@dataclass
class ConfidenceScore:
    """Computed confidence with the deduction per penalty source."""

    score: int
    deductions: dict[str, int]
    warnings: list[str]


class ConfidenceScorer:
    """Fold scan results into a bounded integer confidence."""

    def __init__(self, penalties: PenaltyConfig | None = None):
        self.penalties = penalties or PenaltyConfig()

    def score(
        self,
        scan_summary: ScanSummary,
        stub_findings: Iterable[StubFinding] = (),
        count_checks: Sequence[CountCheck] = (),
        keyword_matches: Sequence[KeywordMatch] = (),
    ) -> tuple[int, list[str]]:
        """Return ``(confidence, warnings)``."""
        result = self.breakdown(scan_summary, stub_findings, count_checks, keyword_matches)
        return result.score, result.warnings

    def breakdown(
        self,
        scan_summary: ScanSummary,
        stub_findings: Iterable[StubFinding] = (),
        count_checks: Sequence[CountCheck] = (),
        keyword_matches: Sequence[KeywordMatch] = (),
    ) -> ConfidenceScore:
        p = self.penalties
        stubs = list(stub_findings)
        found = sum(1 for m in keyword_matches if m.occurrence_count > 0)
        zero_result = max(0, scan_summary.successful_searches - found)
        mismatches = sum(1 for c in count_checks if c.matches is False)
        unknown = sum(1 for c in count_checks if c.matches is None)
        supported = found > 0 or any(c.matches is True for c in count_checks)

        deductions: dict[str, int] = {}
        warnings: list[str] = []

        def deduct(source: str, occurrences: int, magnitude: int, message: str) -> None:
            amount = occurrences * max(0, magnitude)
            if amount <= 0:
                return
            deductions[source] = amount
            warnings.append(f"{message} (-{amount})")

        deduct(
            "failed_search", scan_summary.failed_searches, p.failed_search,
            f"{scan_summary.failed_searches} keyword search(es) could not run",
        )
        deduct(
            "zero_result_search", zero_result, p.zero_result_search,
            f"{zero_result} keyword(s) not found in the repository",
        )
        deduct(
            "stub_finding", len(stubs), p.stub_finding,
            f"{len(stubs)} unfinished-work marker(s) near matching code",
        )
        deduct(
            "count_mismatch", mismatches, p.count_mismatch,
            f"{mismatches} numeric claim(s) contradict the code",
        )
        deduct(
            "unknown_count", unknown, p.unknown_count,
            f"{unknown} numeric claim(s) could not be checked",
        )
        deduct(
            "unsupported_claim", 0 if supported else 1, p.unsupported_claim,
            "No supporting evidence found in the repository",
        )

        score = max(0, min(MAX_CONFIDENCE, MAX_CONFIDENCE - sum(deductions.values())))
        return ConfidenceScore(score=score, deductions=deductions, warnings=warnings)
