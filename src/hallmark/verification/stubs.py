"""Unfinished-work markers in source text.

Rules are tried in order and the first match on a line wins, so the more
specific markers (``todo!()``, ``raise NotImplementedError``) are listed
ahead of the bare tags they contain.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from hallmark.utils.text import truncate_display

MAX_CONTEXT_CHARS = 200


class StubCategory(Enum):
    """What kind of unfinished-work marker was found."""

    TODO = "todo"
    FIXME = "fixme"
    XXX = "xxx"
    HACK = "hack"
    UNIMPLEMENTED_MACRO = "unimplemented_macro"
    TODO_MACRO = "todo_macro"
    NOT_IMPLEMENTED_PANIC = "not_implemented_panic"
    NOT_IMPLEMENTED_ERROR = "not_implemented_error"
    NOT_YET_IMPLEMENTED = "not_yet_implemented"
    STUB_COMMENT = "stub_comment"
    PLACEHOLDER = "placeholder"
    EMPTY_BODY = "empty_body"
    COMING_SOON = "coming_soon"
    MOCK_DATA = "mock_data"


_COMMENT = r"(?://+|#+|/\*+|--|;+)"

# (pattern, category) -- first match wins
_RULES: tuple[tuple[re.Pattern[str], StubCategory], ...] = (
    (
        re.compile(r'panic!\s*\(\s*"(?:not implemented|unimplemented)', re.IGNORECASE),
        StubCategory.NOT_IMPLEMENTED_PANIC,
    ),
    (re.compile(r"\bunimplemented!\s*\("), StubCategory.UNIMPLEMENTED_MACRO),
    (re.compile(r"\btodo!\s*\("), StubCategory.TODO_MACRO),
    (
        re.compile(
            r"\braise\s+NotImplementedError\b|\bNotImplementedException\b|"
            r"\bthrow\s+new\s+Error\(\s*[\"'`]not implemented",
            re.IGNORECASE,
        ),
        StubCategory.NOT_IMPLEMENTED_ERROR,
    ),
    (re.compile(r"\bnot\s+yet\s+implemented\b", re.IGNORECASE), StubCategory.NOT_YET_IMPLEMENTED),
    (re.compile(_COMMENT + r"\s*stub\b", re.IGNORECASE), StubCategory.STUB_COMMENT),
    (re.compile(_COMMENT + r"\s*placeholder\b", re.IGNORECASE), StubCategory.PLACEHOLDER),
    (re.compile(r"\bcoming\s+soon\b", re.IGNORECASE), StubCategory.COMING_SOON),
    (
        re.compile(
            _COMMENT + r"\s*(?:mock|fake|dummy)\s+data\b|\bMOCK_DATA\b",
            re.IGNORECASE,
        ),
        StubCategory.MOCK_DATA,
    ),
    (
        re.compile(
            r"^\s*(?:async\s+)?def\s+\w+\s*\(.*\)\s*(?:->\s*[^:]+)?:\s*(?:pass|\.\.\.)\s*$|"
            r"^\s*(?:pub(?:\([^)]*\))?\s+)?(?:async\s+)?fn\s+\w+\s*(?:<[^>]*>)?\s*\(.*\)"
            r"\s*(?:->\s*[^{]+)?\{\s*\}\s*$"
        ),
        StubCategory.EMPTY_BODY,
    ),
    (re.compile(r"\bFIXME\b"), StubCategory.FIXME),
    (re.compile(r"\bHACK\b"), StubCategory.HACK),
    (re.compile(r"\bXXX\b"), StubCategory.XXX),
    (re.compile(r"\bTODO\b"), StubCategory.TODO),
)


@dataclass(frozen=True)
class StubFinding:
    """One marker at one location; identity is ``(file, line)``."""

    kind: StubCategory = field(compare=False)
    file: str
    line: int
    context: str = field(default="", compare=False)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "file": self.file,
            "line": self.line,
            "context": self.context,
        }


def classify_line(line: str) -> StubCategory | None:
    """Return the category of the first rule matching ``line``."""
    for pattern, category in _RULES:
        if pattern.search(line):
            return category
    return None


def classify(text: str, file: str, *, line_offset: int = 1) -> set[StubFinding]:
    """Scan ``text`` line by line; ``line_offset`` is the number of its first line."""
    findings: set[StubFinding] = set()
    for index, line in enumerate((text or "").splitlines()):
        category = classify_line(line)
        if category is None:
            continue
        findings.add(StubFinding(
            kind=category,
            file=file,
            line=line_offset + index,
            context=truncate_display(line.strip(), MAX_CONTEXT_CHARS),
        ))
    return findings
