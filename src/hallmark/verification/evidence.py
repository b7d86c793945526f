"""Evidence records produced by verification and the report that bundles them."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from hallmark.changelog import ChangelogEntry
from hallmark.verification.stubs import StubFinding

HIGH_CONFIDENCE = 70
MEDIUM_CONFIDENCE = 40
DEFAULT_DISCARD_BELOW = MEDIUM_CONFIDENCE


class ConfidenceBand(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def from_score(cls, score: int) -> ConfidenceBand:
        if score >= HIGH_CONFIDENCE:
            return cls.HIGH
        if score >= MEDIUM_CONFIDENCE:
            return cls.MEDIUM
        return cls.LOW


class Verdict(Enum):
    """What the caller should do with a generated entry."""

    KEEP = "keep"
    FLAG = "flag"
    DISCARD = "discard"


class ReportStatus(Enum):
    OK = "ok"
    DEGRADED = "degraded"
    ALL_UNVERIFIABLE = "all_unverifiable"
    EMPTY = "empty"


@dataclass(frozen=True)
class ScanSummary:
    """Search bookkeeping for one entry."""

    total_keywords: int = 0
    successful_searches: int = 0
    failed_searches: int = 0

    def __post_init__(self) -> None:
        if min(self.total_keywords, self.successful_searches, self.failed_searches) < 0:
            raise ValueError("scan counts must be non-negative")
        if self.successful_searches + self.failed_searches != self.total_keywords:
            raise ValueError(
                "successful_searches + failed_searches must equal total_keywords "
                f"({self.successful_searches} + {self.failed_searches} "
                f"!= {self.total_keywords})"
            )

    def to_dict(self) -> dict:
        return {
            "total_keywords": self.total_keywords,
            "successful_searches": self.successful_searches,
            "failed_searches": self.failed_searches,
        }


@dataclass(frozen=True)
class KeywordMatch:
    keyword: str
    files: tuple[str, ...] = ()
    occurrence_count: int = 0
    sample_lines: tuple[str, ...] = ()
    # False when unfinished-work markers sit near this keyword's matches.
    appears_complete: bool = True

    def to_dict(self) -> dict:
        return {
            "keyword": self.keyword,
            "files": list(self.files),
            "occurrence_count": self.occurrence_count,
            "sample_lines": list(self.sample_lines),
            "appears_complete": self.appears_complete,
        }


@dataclass(frozen=True)
class CountCheck:
    """A numeric claim and what the repository says about it."""

    claimed_text: str
    claimed_count: int
    actual_count: int | None = None
    source_location: str | None = None

    @property
    def matches(self) -> bool | None:
        """None when the actual count could not be determined."""
        if self.actual_count is None:
            return None
        return self.actual_count == self.claimed_count

    def to_dict(self) -> dict:
        return {
            "claimed_text": self.claimed_text,
            "claimed_count": self.claimed_count,
            "actual_count": self.actual_count,
            "source_location": self.source_location,
            "matches": self.matches,
        }


@dataclass(frozen=True)
class KeyFileExcerpt:
    path: str
    content: str
    truncated: bool = False

    def to_dict(self) -> dict:
        return {"path": self.path, "content": self.content, "truncated": self.truncated}


@dataclass(frozen=True)
class EntryEvidence:
    """Everything verification learned about one generated entry.

    ``position`` is the entry's index in the generated output; the
    aggregator uses it to pair evidence with entries.
    """

    position: int
    entry: ChangelogEntry
    scan_summary: ScanSummary = field(default_factory=ScanSummary)
    keyword_matches: tuple[KeywordMatch, ...] = ()
    count_checks: tuple[CountCheck, ...] = ()
    stub_findings: tuple[StubFinding, ...] = ()
    confidence: int = 100
    warnings: tuple[str, ...] = ()
    discard_below: int = DEFAULT_DISCARD_BELOW

    def __post_init__(self) -> None:
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"confidence must be within [0, 100], got {self.confidence}")
        if self.position < 0:
            raise ValueError("position must be non-negative")

    @property
    def degraded(self) -> bool:
        return bool(self.warnings)

    @property
    def band(self) -> ConfidenceBand:
        return ConfidenceBand.from_score(self.confidence)

    @property
    def verdict(self) -> Verdict:
        if not self.degraded:
            return Verdict.KEEP
        if self.confidence >= self.discard_below:
            return Verdict.FLAG
        return Verdict.DISCARD

    def to_dict(self) -> dict:
        return {
            "position": self.position,
            "category": self.entry.category.value,
            "description": self.entry.description,
            "confidence": self.confidence,
            "band": self.band.value,
            "verdict": self.verdict.value,
            "degraded": self.degraded,
            "warnings": list(self.warnings),
            "scan_summary": self.scan_summary.to_dict(),
            "keyword_matches": [m.to_dict() for m in self.keyword_matches],
            "count_checks": [c.to_dict() for c in self.count_checks],
            "stub_findings": [s.to_dict() for s in self.stub_findings],
        }


@dataclass(frozen=True)
class VerificationReport:
    """Per-entry evidence for one generated changelog, in entry order."""

    entries: tuple[EntryEvidence, ...] = ()
    project_structure: str | None = None
    key_files: tuple[KeyFileExcerpt, ...] = ()

    @property
    def degraded(self) -> bool:
        return any(evidence.degraded for evidence in self.entries)

    @property
    def status(self) -> ReportStatus:
        if not self.entries:
            return ReportStatus.EMPTY
        if all(evidence.verdict is Verdict.DISCARD for evidence in self.entries):
            return ReportStatus.ALL_UNVERIFIABLE
        if self.degraded:
            return ReportStatus.DEGRADED
        return ReportStatus.OK

    @property
    def total_failed_searches(self) -> int:
        return sum(evidence.scan_summary.failed_searches for evidence in self.entries)

    def low_confidence_entries(self) -> list[EntryEvidence]:
        return [e for e in self.entries if e.band is ConfidenceBand.LOW]

    def kept_entries(self) -> list[ChangelogEntry]:
        """Entries the caller can publish: everything not discarded."""
        return [e.entry for e in self.entries if e.verdict is not Verdict.DISCARD]

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "degraded": self.degraded,
            "total_failed_searches": self.total_failed_searches,
            "entries": [evidence.to_dict() for evidence in self.entries],
            "project_structure": self.project_structure,
            "key_files": [excerpt.to_dict() for excerpt in self.key_files],
        }
