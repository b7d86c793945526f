"""Repository content search.

Shells out to `rg` (ripgrep) for fast, gitignore-aware search.
Falls back to a Python walk of the tree if ripgrep is not installed.

A search that runs and finds nothing is a success with zero matches; only
a failure of the search mechanism itself (bad exit, timeout, spawn error)
is reported as ``ok=False``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import re
import shutil
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

IGNORED_DIRS = frozenset({
    ".git", "target", "node_modules", "dist", "build",
    "__pycache__", ".venv", "venv",
})
CODE_EXTENSIONS = (
    "rs", "ts", "tsx", "js", "jsx", "py", "go", "java", "c", "cpp", "h", "hpp",
)

DEFAULT_TIMEOUT_SECONDS = 30
_MATCH_LINE_RE = re.compile(r"^(?P<path>.+?):(?P<line>\d+):(?P<text>.*)$")


@dataclass(frozen=True)
class SearchMatch:
    file: str
    line: int
    text: str


@dataclass
class SearchOutcome:
    """Result of one keyword search."""

    keyword: str
    ok: bool
    matches: list[SearchMatch] = field(default_factory=list)
    error: str = ""

    @property
    def files(self) -> list[str]:
        """Matching files in first-seen order."""
        seen: dict[str, None] = {}
        for match in self.matches:
            seen.setdefault(match.file, None)
        return list(seen)

    @property
    def occurrence_count(self) -> int:
        return len(self.matches)

    def lines_in(self, file: str) -> list[int]:
        return [m.line for m in self.matches if m.file == file]


def is_code_file(path: Path) -> bool:
    return path.suffix.lstrip(".") in CODE_EXTENSIONS


def iter_code_files(root: Path) -> Iterator[Path]:
    """Yield source files under ``root`` in a stable order, skipping build dirs."""
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRS)
        for name in sorted(filenames):
            path = Path(dirpath) / name
            if is_code_file(path):
                yield path


class RepoSearcher:
    """Case-insensitive fixed-string search over one repository's source files."""

    def __init__(
        self,
        repo_root: Path,
        *,
        rg_command: str | None = "rg",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.repo_root = Path(repo_root)
        self.timeout_seconds = timeout_seconds
        self._rg_path = shutil.which(rg_command) if rg_command else None
        if rg_command and self._rg_path is None:
            logger.debug("ripgrep not found, using Python search fallback")

    @property
    def uses_ripgrep(self) -> bool:
        return self._rg_path is not None

    async def search(self, keyword: str) -> SearchOutcome:
        if not keyword:
            return SearchOutcome(keyword=keyword, ok=False, error="empty search term")
        if self._rg_path:
            return await self._run_ripgrep(self._rg_path, keyword)
        return await asyncio.to_thread(self._python_search, keyword)

    async def read_text(self, file: str) -> str | None:
        """Read a repository-relative file; None when it cannot be read."""
        return await asyncio.to_thread(self._read_text, file)

    async def count_files(self, fragment: str) -> int:
        """Count source files whose repository-relative path contains ``fragment``."""
        return await asyncio.to_thread(self._count_files, fragment)

    def _count_files(self, fragment: str) -> int:
        needle = fragment.casefold()
        if not needle or not self.repo_root.is_dir():
            return 0
        return sum(
            1 for path in iter_code_files(self.repo_root)
            if needle in path.relative_to(self.repo_root).as_posix().casefold()
        )

    def _read_text(self, file: str) -> str | None:
        try:
            return (self.repo_root / file).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug("Cannot read %s: %s", file, e)
            return None

    async def _run_ripgrep(self, rg_path: str, keyword: str) -> SearchOutcome:
        cmd = [
            rg_path,
            "--color=never",
            "--no-heading",
            "--with-filename",
            "--line-number",
            "--ignore-case",
            "--fixed-strings",
            "--type-add", "code:*.{" + ",".join(CODE_EXTENSIONS) + "}",
            "--type", "code",
        ]
        for ignored in sorted(IGNORED_DIRS):
            cmd.extend(["-g", f"!{ignored}"])
        cmd.extend(["--", keyword, "."])

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(self.repo_root),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            return SearchOutcome(keyword=keyword, ok=False, error=f"ripgrep error: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self.timeout_seconds,
            )
        except TimeoutError:
            await _kill(proc)
            return SearchOutcome(
                keyword=keyword,
                ok=False,
                error=f"Search timed out after {self.timeout_seconds:g} seconds.",
            )
        except asyncio.CancelledError:
            await _kill(proc)
            raise

        if proc.returncode == 0:
            output = stdout.decode("utf-8", errors="replace")
            return SearchOutcome(keyword=keyword, ok=True, matches=_parse_matches(output))
        if proc.returncode == 1:
            return SearchOutcome(keyword=keyword, ok=True)
        err = stderr.decode("utf-8", errors="replace").strip()
        return SearchOutcome(
            keyword=keyword,
            ok=False,
            error=f"ripgrep error (exit {proc.returncode}): {err}" if err
            else f"ripgrep error (exit {proc.returncode})",
        )

    def _python_search(self, keyword: str) -> SearchOutcome:
        """Pure Python fallback when ripgrep is not available."""
        if not self.repo_root.is_dir():
            return SearchOutcome(
                keyword=keyword,
                ok=False,
                error=f"Path not found: {self.repo_root}",
            )
        needle = keyword.casefold()
        matches: list[SearchMatch] = []
        for path in iter_code_files(self.repo_root):
            try:
                text = path.read_text(encoding="utf-8", errors="replace")
            except OSError:
                continue
            rel = path.relative_to(self.repo_root).as_posix()
            for number, line in enumerate(text.splitlines(), 1):
                if needle in line.casefold():
                    matches.append(SearchMatch(rel, number, line.rstrip()))
        matches.sort(key=lambda m: (m.file, m.line))
        return SearchOutcome(keyword=keyword, ok=True, matches=matches)


def _parse_matches(output: str) -> list[SearchMatch]:
    matches: list[SearchMatch] = []
    for raw in output.splitlines():
        hit = _MATCH_LINE_RE.match(raw)
        if not hit:
            continue
        path = hit.group("path")
        if path.startswith("./"):
            path = path[2:]
        matches.append(SearchMatch(path, int(hit.group("line")), hit.group("text").rstrip()))
    # rg searches in parallel; output order varies between runs
    matches.sort(key=lambda m: (m.file, m.line))
    return matches


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
    await proc.wait()
