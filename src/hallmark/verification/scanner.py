"""Gather repository evidence for one changelog entry.

For each entry the scanner:
1. extracts searchable keywords from the description
2. searches the repository for each keyword, recording search failures
3. classifies unfinished-work markers near the keyword matches
4. checks numeric claims ("8 templates") against collection definitions,
   then against the number of files named after the subject
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from hallmark.changelog import ChangelogEntry
from hallmark.config import VerificationConfig
from hallmark.utils.text import truncate_display
from hallmark.verification.evidence import CountCheck, KeywordMatch, ScanSummary
from hallmark.verification.search import RepoSearcher, SearchOutcome
from hallmark.verification.stubs import StubFinding, classify

logger = logging.getLogger(__name__)

MAX_SAMPLE_LINES = 3
MAX_SAMPLE_CHARS = 200
MAX_CLAIMED_COUNT = 1000

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "been",
    "be", "have", "has", "had", "do", "does", "did", "will", "would",
    "could", "should", "may", "might", "must", "shall", "can", "need",
    "new", "add", "added", "change", "changed", "fix", "fixed", "update",
    "updated", "remove", "removed", "improve", "improved", "support",
    "supported", "feature", "features", "now", "using", "use", "based",
    "all", "any", "some", "more", "less", "better", "best", "first",
    "initial", "release", "version", "multiple", "various", "several",
    "when", "that", "this", "with", "into", "than", "then", "them", "they",
    "implement", "implemented", "full", "fully", "correctly", "properly",
    "deprecated", "security", "issue", "issues", "instead", "also",
})

GENERIC_CAPITALIZED = frozenset({
    "Added", "Changed", "Deprecated", "Removed", "Fixed", "Security",
    "The", "This", "With", "When", "New", "Now", "Implemented", "Improved",
})

# Nouns that follow a number without naming countable things in code.
NON_COUNTABLE = frozenset({
    "handling", "panic", "panics", "byte", "bytes", "bit", "bits", "kb", "mb",
    "gb", "percent", "pct", "times", "time", "x", "ms", "millisecond",
    "milliseconds", "sec", "secs", "second", "seconds", "minute", "minutes",
    "hour", "hours", "day", "days", "week", "weeks", "year", "years",
    "support", "compatibility", "compatible", "release", "version", "style",
    "syntax", "encoding", "mode", "format", "level", "digit", "digits",
})

# Words allowed between the number and the counted noun.
_QUALIFIERS = frozenset({
    "new", "additional", "more", "extra", "built", "builtin", "custom",
    "different", "distinct", "supported", "default", "predefined", "preset",
})

_WORD_RE = re.compile(r"[A-Z][a-z]+(?:[A-Z][a-z]+)*|[a-z]+(?:_[a-z]+)+|[A-Za-z]{4,}")
_QUOTED_RE = re.compile(r"[\"'`]([^\"'`]+)[\"'`]")
_PRODUCT_RE = re.compile(r"\b([A-Z][a-zA-Z0-9]+)\b")

# A count starts on a token boundary: "UTF-8", "v1.2" or "1,500" never yields one.
_CLAIM_RE = re.compile(r"(?<![\w.,\-])(\d+)\s+([A-Za-z]+)(?:\s+([A-Za-z]+))?")
_FLAG_BEFORE_RE = re.compile(r"(?:^|\s)--?[A-Za-z][\w-]*[ \t]*=?[ \t]*$")


@dataclass(frozen=True)
class NumericClaim:
    text: str
    count: int
    subject: str

    @property
    def stem(self) -> str:
        return singularize(self.subject)


@dataclass(frozen=True)
class CollectionCount:
    count: int
    line: int


@dataclass
class EntryScan:
    """Raw evidence for one entry, before scoring."""

    summary: ScanSummary
    keyword_matches: list[KeywordMatch] = field(default_factory=list)
    count_checks: list[CountCheck] = field(default_factory=list)
    stub_findings: set[StubFinding] = field(default_factory=set)
    warnings: list[str] = field(default_factory=list)


def extract_keywords(description: str) -> list[str]:
    """Extract searchable keywords, lowercased and deduplicated.

    Order is deterministic: identifier-like words, then quoted names, then
    capitalised product names, each in order of appearance.
    """
    keywords: dict[str, None] = {}
    text = description or ""

    for match in _WORD_RE.finditer(text):
        word = match.group(0).lower()
        if word in STOP_WORDS or not 4 <= len(word) <= 30:
            continue
        keywords.setdefault(word, None)

    for match in _QUOTED_RE.finditer(text):
        term = match.group(1).strip().lower()
        if 3 <= len(term) <= 50:
            keywords.setdefault(term, None)

    for match in _PRODUCT_RE.finditer(text):
        term = match.group(1)
        if term in GENERIC_CAPITALIZED or term.lower() in STOP_WORDS or len(term) < 3:
            continue
        keywords.setdefault(term.lower(), None)

    return list(keywords)


def singularize(word: str) -> str:
    word = word.lower()
    if word.endswith("ies") and len(word) > 4:
        return word[:-3] + "y"
    if word.endswith(("ses", "xes", "ches", "shes")):
        return word[:-2]
    if word.endswith("s") and not word.endswith("ss") and len(word) > 3:
        return word[:-1]
    return word


def find_numeric_claims(description: str) -> list[NumericClaim]:
    """Find "N subject" claims worth checking against the code."""
    claims: list[NumericClaim] = []
    text = description or ""
    for match in _CLAIM_RE.finditer(text):
        if _FLAG_BEFORE_RE.search(text[: match.start()]):
            continue
        count = int(match.group(1))
        if count <= 0 or count > MAX_CLAIMED_COUNT:
            continue
        first, second = match.group(2), match.group(3)
        if first.lower() in _QUALIFIERS and second:
            subject, end = second, match.end(3)
        else:
            subject, end = first, match.end(2)
        if subject.lower() in NON_COUNTABLE or len(subject) < 3:
            continue
        claims.append(NumericClaim(
            text=text[match.start():end],
            count=count,
            subject=subject.lower(),
        ))
    return claims


def claim_supported_by(claim: NumericClaim, text: str) -> bool:
    """True when ``text`` literally states the claim's count for its subject.

    The count must stand on token boundaries, so a digit inside "UTF-8" or
    "v2.3" never counts as a mention.
    """
    stem = re.escape(claim.stem)
    pattern = re.compile(
        rf"(?<![\w.,\-]){claim.count}(?![\w.,\-])\s+(?:[A-Za-z]+\s+)?{stem}",
        re.IGNORECASE,
    )
    return bool(pattern.search(text or ""))


def _definition_pattern(stem: str) -> re.Pattern[str]:
    if stem.endswith("y"):
        noun = re.escape(stem[:-1]) + "(?:y|ies)"
    else:
        noun = re.escape(stem) + "(?:s|es)?"
    name = rf"\b(\w*{noun})\b[\"']?"
    assign = r"(?:(?::[^=\n]*)?=|:)"
    opener = r"(?:&|\w+!|\w+\s*\(\s*)?([\[{(])"
    return re.compile(name + r"\s*" + assign + r"\s*" + opener, re.IGNORECASE)


def count_collection_elements(content: str, subject: str) -> CollectionCount | None:
    """Count the top-level elements of the first collection named after ``subject``.

    Recognises definitions such as ``TEMPLATES = [...]``,
    ``templates: {...}`` and ``const TEMPLATES: &[&str] = &[...]``.
    """
    stem = singularize(subject)
    if len(stem) < 3:
        return None
    for match in _definition_pattern(stem).finditer(content):
        count = _count_elements(content, match.start(2))
        if count is not None:
            line = content.count("\n", 0, match.start()) + 1
            return CollectionCount(count=count, line=line)
    return None


_CLOSERS = {"[": "]", "{": "}", "(": ")"}


def _count_elements(content: str, start: int) -> int | None:
    """Count comma-separated items of the bracket opened at ``start``."""
    depth = 0
    count = 0
    pending = False
    quote = ""
    escape = False
    for ch in content[start:]:
        if quote:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == quote:
                quote = ""
            continue
        if ch in "\"'`":
            quote = ch
            if depth == 1:
                pending = True
            continue
        if ch in _CLOSERS:
            depth += 1
            if depth > 1:
                pending = True
            continue
        if ch in _CLOSERS.values():
            depth -= 1
            if depth == 0:
                return count + (1 if pending else 0)
            continue
        if depth == 1:
            if ch == ",":
                if pending:
                    count += 1
                pending = False
            elif not ch.isspace():
                pending = True
    return None


class EvidenceScanner:
    """Searches one repository for evidence behind changelog entries."""

    def __init__(
        self,
        config: VerificationConfig | None = None,
        *,
        rg_command: str | None = "rg",
    ):
        self.config = config or VerificationConfig()
        self._rg_command = rg_command

    def searcher_for(self, repo_root: Path) -> RepoSearcher:
        return RepoSearcher(
            repo_root,
            rg_command=self._rg_command,
            timeout_seconds=self.config.search_timeout_seconds,
        )

    async def scan(
        self,
        entry: ChangelogEntry,
        repo_root: Path,
        *,
        searcher: RepoSearcher | None = None,
    ) -> EntryScan:
        searcher = searcher or self.searcher_for(repo_root)
        keywords = extract_keywords(entry.description)
        logger.debug("Keywords for %r: %s", entry.description, keywords)

        successful = 0
        failed = 0
        matches: list[KeywordMatch] = []
        stubs: set[StubFinding] = set()
        warnings: list[str] = []

        for keyword in keywords:
            outcome = await searcher.search(keyword)
            if not outcome.ok:
                failed += 1
                logger.warning("Search for %r failed: %s", keyword, outcome.error)
                warnings.append(f"Search for '{keyword}' failed: {outcome.error}")
                continue
            successful += 1
            if not outcome.matches:
                logger.debug("No matches for %r", keyword)
                continue
            nearby = await self._stubs_near(searcher, outcome)
            matches.append(self._keyword_match(outcome, appears_complete=not nearby))
            stubs |= nearby

        checks = [
            await self._check_claim(searcher, claim)
            for claim in find_numeric_claims(entry.description)
        ]

        return EntryScan(
            summary=ScanSummary(
                total_keywords=len(keywords),
                successful_searches=successful,
                failed_searches=failed,
            ),
            keyword_matches=matches,
            count_checks=checks,
            stub_findings=stubs,
            warnings=warnings,
        )

    def _keyword_match(self, outcome: SearchOutcome, *, appears_complete: bool) -> KeywordMatch:
        samples = tuple(
            truncate_display(f"{m.file}:{m.line}: {m.text.strip()}", MAX_SAMPLE_CHARS)
            for m in outcome.matches[:MAX_SAMPLE_LINES]
        )
        return KeywordMatch(
            keyword=outcome.keyword,
            files=tuple(outcome.files[: self.config.max_files_per_keyword]),
            occurrence_count=outcome.occurrence_count,
            sample_lines=samples,
            appears_complete=appears_complete,
        )

    async def _stubs_near(
        self,
        searcher: RepoSearcher,
        outcome: SearchOutcome,
    ) -> set[StubFinding]:
        """Classify markers within ``stub_context_lines`` of each keyword hit."""
        radius = self.config.stub_context_lines
        findings: set[StubFinding] = set()
        for file in outcome.files[: self.config.stub_files_per_keyword]:
            content = await searcher.read_text(file)
            if content is None:
                continue
            lines = content.splitlines()
            for hit in outcome.lines_in(file):
                first = max(1, hit - radius)
                last = min(len(lines), hit + radius)
                window = "\n".join(lines[first - 1:last])
                findings |= classify(window, file, line_offset=first)
        return findings

    async def _check_claim(self, searcher: RepoSearcher, claim: NumericClaim) -> CountCheck:
        outcome = await searcher.search(claim.stem)
        if not outcome.ok:
            logger.debug("Cannot check %r: %s", claim.text, outcome.error)
            return CountCheck(claimed_text=claim.text, claimed_count=claim.count)

        mentioned_in: str | None = None
        for file in outcome.files[: self.config.max_files_per_keyword]:
            content = await searcher.read_text(file)
            if content is None:
                continue
            found = count_collection_elements(content, claim.subject)
            if found is not None:
                return CountCheck(
                    claimed_text=claim.text,
                    claimed_count=claim.count,
                    actual_count=found.count,
                    source_location=f"{file}:{found.line}",
                )
            if mentioned_in is None and claim_supported_by(claim, content):
                mentioned_in = file

        file_count = await searcher.count_files(claim.stem)
        if file_count:
            return CountCheck(
                claimed_text=claim.text,
                claimed_count=claim.count,
                actual_count=file_count,
                source_location=f"files matching *{claim.stem}*",
            )

        if mentioned_in is not None:
            return CountCheck(
                claimed_text=claim.text,
                claimed_count=claim.count,
                actual_count=claim.count,
                source_location=mentioned_in,
            )
        return CountCheck(claimed_text=claim.text, claimed_count=claim.count)
