"""Combine per-entry evidence into one report."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from hallmark.changelog import ChangelogEntry
from hallmark.verification.evidence import EntryEvidence, KeyFileExcerpt, VerificationReport


def aggregate(
    entries: Sequence[ChangelogEntry],
    evidence: Iterable[EntryEvidence],
    *,
    project_structure: str | None = None,
    key_files: Iterable[KeyFileExcerpt] = (),
) -> VerificationReport:
    """Pair evidence with entries by position and build the report.

    Evidence may arrive in any order. Raises ValueError when a position is
    missing, duplicated, out of range, or names a different entry.
    """
    by_position: dict[int, EntryEvidence] = {}
    for item in evidence:
        if item.position in by_position:
            raise ValueError(f"duplicate evidence for entry {item.position}")
        if not 0 <= item.position < len(entries):
            raise ValueError(f"evidence position {item.position} has no entry")
        if item.entry != entries[item.position]:
            raise ValueError(f"evidence for entry {item.position} describes another entry")
        by_position[item.position] = item

    missing = [i for i in range(len(entries)) if i not in by_position]
    if missing:
        raise ValueError(f"no evidence for entries {missing}")

    return VerificationReport(
        entries=tuple(by_position[i] for i in range(len(entries))),
        project_structure=project_structure,
        key_files=tuple(key_files),
    )
