"""Verification engine: scan every entry in parallel, score, aggregate.

Scans share only the read-only repository, so they run concurrently under
a worker bound. Scoring and aggregation are pure and run afterwards.
Cancelling ``verify`` cancels every scan still in flight.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path

from hallmark.changelog import ChangelogEntry
from hallmark.config import VerificationConfig
from hallmark.exceptions import VerificationError
from hallmark.utils.concurrency import gather_bounded
from hallmark.utils.latency import timed_block
from hallmark.utils.text import truncate_bytes
from hallmark.verification.aggregator import aggregate
from hallmark.verification.confidence import ConfidenceScorer
from hallmark.verification.evidence import EntryEvidence, KeyFileExcerpt, VerificationReport
from hallmark.verification.scanner import EvidenceScanner
from hallmark.verification.search import IGNORED_DIRS, RepoSearcher

logger = logging.getLogger(__name__)

KEY_FILES = ("Cargo.toml", "package.json", "pyproject.toml", "go.mod", "README.md")
TRUNCATED_MARKER = "...[truncated]"
STRUCTURE_DEPTH = 3
STRUCTURE_MAX_LINES = 50


class VerificationEngine:
    """Cross-checks generated entries against one repository."""

    def __init__(
        self,
        config: VerificationConfig | None = None,
        *,
        scanner: EvidenceScanner | None = None,
        scorer: ConfidenceScorer | None = None,
    ):
        self.config = config or VerificationConfig()
        self.scanner = scanner or EvidenceScanner(self.config)
        self.scorer = scorer or ConfidenceScorer(self.config.penalties)

    async def verify(
        self,
        entries: Sequence[ChangelogEntry],
        repo_root: Path,
    ) -> VerificationReport:
        root = Path(repo_root)
        if not root.is_dir():
            raise VerificationError(f"Repository root not found: {root}")
        entries = list(entries)
        if not entries:
            return aggregate(entries, ())

        searcher = self.scanner.searcher_for(root)
        factories = [
            (lambda i=i, e=e: self._evidence_for(i, e, root, searcher))
            for i, e in enumerate(entries)
        ]
        with timed_block(logger, event="verify", fields={"entries": len(entries)}):
            evidence = await gather_bounded(factories, limit=self.config.max_workers)
            structure, key_files = await asyncio.gather(
                asyncio.to_thread(project_structure, root),
                asyncio.to_thread(gather_key_files, root, self.config.excerpt_max_bytes),
            )

        report = aggregate(
            entries, evidence, project_structure=structure, key_files=key_files,
        )
        logger.info(
            "Verified %d entries: status=%s, %d failed searches",
            len(entries), report.status.value, report.total_failed_searches,
        )
        return report

    async def _evidence_for(
        self,
        position: int,
        entry: ChangelogEntry,
        root: Path,
        searcher: RepoSearcher,
    ) -> EntryEvidence:
        scan = await self.scanner.scan(entry, root, searcher=searcher)
        stubs = sorted(scan.stub_findings, key=lambda s: (s.file, s.line))
        confidence, score_warnings = self.scorer.score(
            scan.summary, stubs, scan.count_checks, scan.keyword_matches,
        )
        return EntryEvidence(
            position=position,
            entry=entry,
            scan_summary=scan.summary,
            keyword_matches=tuple(scan.keyword_matches),
            count_checks=tuple(scan.count_checks),
            stub_findings=tuple(stubs),
            confidence=confidence,
            warnings=tuple(scan.warnings + score_warnings),
            discard_below=self.config.discard_below,
        )


async def verify(
    entries: Sequence[ChangelogEntry],
    repo_root: Path,
    config: VerificationConfig | None = None,
) -> VerificationReport:
    """Verify ``entries`` against ``repo_root`` with a default engine."""
    return await VerificationEngine(config).verify(entries, repo_root)


def project_structure(
    repo_root: Path,
    *,
    depth: int = STRUCTURE_DEPTH,
    max_lines: int = STRUCTURE_MAX_LINES,
) -> str | None:
    """Indented directory listing, directories first, build dirs skipped."""
    root = Path(repo_root)
    if not root.is_dir():
        return None
    lines: list[str] = [root.name or str(root)]

    def walk(directory: Path, level: int) -> None:
        if level > depth or len(lines) >= max_lines:
            return
        try:
            children = list(directory.iterdir())
        except OSError:
            return
        children = [c for c in children if c.name not in IGNORED_DIRS]
        children.sort(key=lambda p: (not p.is_dir(), p.name))
        for child in children:
            if len(lines) >= max_lines:
                return
            indent = "    " * (level - 1)
            if child.is_dir():
                lines.append(f"{indent}{child.name}/")
                walk(child, level + 1)
            else:
                lines.append(f"{indent}{child.name}")

    walk(root, 1)
    return "\n".join(lines[:max_lines])


def gather_key_files(repo_root: Path, max_bytes: int) -> list[KeyFileExcerpt]:
    """Read well-known project files, truncated to ``max_bytes`` of UTF-8."""
    excerpts: list[KeyFileExcerpt] = []
    for name in KEY_FILES:
        path = Path(repo_root) / name
        if not path.is_file():
            continue
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug("Cannot read key file %s: %s", path, e)
            continue
        truncated = len(content.encode("utf-8")) > max_bytes
        if truncated:
            content = truncate_bytes(content, max_bytes, suffix=TRUNCATED_MARKER)
        excerpts.append(KeyFileExcerpt(path=name, content=content, truncated=truncated))
    return excerpts
