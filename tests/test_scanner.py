"""Tests for keyword extraction, numeric claims, and repository scanning."""

from __future__ import annotations

from pathlib import Path

import pytest

from hallmark.changelog import ChangelogCategory, ChangelogEntry
from hallmark.config import VerificationConfig
from hallmark.verification.scanner import (
    EvidenceScanner,
    NumericClaim,
    claim_supported_by,
    count_collection_elements,
    extract_keywords,
    find_numeric_claims,
)
from hallmark.verification.search import RepoSearcher
from hallmark.verification.stubs import StubCategory


def _entry(description: str) -> ChangelogEntry:
    return ChangelogEntry(ChangelogCategory.ADDED, description)


class TestExtractKeywords:
    def test_identifiers_and_products(self):
        keywords = extract_keywords("Added Bybit exchange support with WebSocket streaming")
        assert {"bybit", "exchange", "websocket", "streaming"} <= set(keywords)
        assert not {"added", "support", "with"} & set(keywords)

    def test_snake_case_and_quoted_names(self):
        keywords = extract_keywords("Renamed `load_config` to 'read settings'")
        assert "load_config" in keywords
        assert "read settings" in keywords

    def test_deterministic_and_deduplicated(self):
        description = "Parser parser PARSER handles Markdown tables in Markdown"
        first = extract_keywords(description)
        assert first == extract_keywords(description)
        assert len(first) == len(set(first))
        assert first.index("parser") < first.index("markdown")

    def test_empty(self):
        assert extract_keywords("") == []


class TestFindNumericClaims:
    def test_simple_claim(self):
        assert find_numeric_claims("Added 8 templates for reports") == [
            NumericClaim(text="8 templates", count=8, subject="templates"),
        ]

    def test_qualifier_before_noun(self):
        (claim,) = find_numeric_claims("Added 3 new items to the menu")
        assert claim.text == "3 new items"
        assert claim.subject == "items"
        assert claim.stem == "item"

    @pytest.mark.parametrize("description", [
        "Fixed UTF-8 handling in the lexer",
        "Bumped to v1.2 release",
        "Retry with --retries 3 attempts",
        "Run with -j 4 workers",
        "Cut latency by 50 percent",
        "Wait 5 seconds before retrying",
        "Reduced memory by 512 bytes",
        "Supports 0 widgets",
        "Imported 5000 rows",
        "Upgraded to OAuth2 flow",
        "Served 1,500 users",
    ])
    def test_ignored(self, description):
        assert find_numeric_claims(description) == []


class TestClaimSupportedBy:
    def test_utf8_handling_never_supports_item_count(self):
        (claim,) = find_numeric_claims("Added 3 new items")
        assert not claim_supported_by(claim, "UTF-8 handling")

    def test_digit_after_hyphen_is_not_a_count(self):
        claim = NumericClaim(text="8 items", count=8, subject="items")
        assert not claim_supported_by(claim, "decode UTF-8 items safely")

    def test_literal_mention(self):
        claim = NumericClaim(text="3 items", count=3, subject="items")
        assert claim_supported_by(claim, "# ships 3 menu items by default")
        assert not claim_supported_by(claim, "# ships 13 items by default")

    def test_thousands_separator_is_not_a_count(self):
        claim = NumericClaim(text="500 users", count=500, subject="users")
        assert not claim_supported_by(claim, "# tested with 1,500 users")


class TestCountCollectionElements:
    def test_python_list(self):
        content = "import os\n\nTEMPLATES = [\n    'a',\n    'b',\n    'c',\n]\n"
        found = count_collection_elements(content, "templates")
        assert found is not None
        assert (found.count, found.line) == (3, 3)

    def test_rust_const_slice(self):
        content = 'const TEMPLATES: &[&str] = &["a", "b"];\n'
        assert count_collection_elements(content, "templates").count == 2

    def test_mapping_and_nested_values(self):
        content = 'config = {\n  subjects: { "a": [1, 2], "b": {"c": 3} },\n}\n'
        assert count_collection_elements(content, "subjects").count == 2

    def test_plural_ies(self):
        content = "ENTRIES = (\n    'x',\n    'y, z',\n)\n"
        assert count_collection_elements(content, "entries").count == 2

    def test_empty_collection(self):
        assert count_collection_elements("WIDGETS = []\n", "widgets").count == 0

    def test_no_definition(self):
        assert count_collection_elements("def templates():\n    return []\n", "templates") is None


class TestEvidenceScanner:
    async def test_todo_near_keyword_is_recorded(self, repo: Path):
        scanner = EvidenceScanner()
        scan = await scanner.scan(_entry("Implemented full OAuth2 flow"), repo)

        assert scan.summary.failed_searches == 0
        assert scan.summary.successful_searches == scan.summary.total_keywords
        assert [(s.kind, s.file, s.line) for s in scan.stub_findings] == [
            (StubCategory.TODO, "src/auth.py", 2),
        ]
        oauth2 = next(m for m in scan.keyword_matches if m.keyword == "oauth2")
        assert oauth2.appears_complete is False
        assert scan.warnings == []

    async def test_build_directories_are_skipped(self, repo: Path):
        scan = await EvidenceScanner().scan(_entry("Vendored oauth2 helpers"), repo)
        files = {f for m in scan.keyword_matches for f in m.files}
        assert files == {"src/auth.py"}

    async def test_python_fallback_matches_ripgrep_shape(self, repo: Path):
        searcher = RepoSearcher(repo, rg_command=None)
        assert not searcher.uses_ripgrep
        scan = await EvidenceScanner(rg_command=None).scan(
            _entry("Implemented full OAuth2 flow"), repo, searcher=searcher,
        )
        assert len(scan.stub_findings) == 1

    async def test_search_failures_become_warnings(self, repo: Path, make_script):
        broken_rg = make_script("rg", "echo 'rg: internal error' >&2\nexit 2")
        scanner = EvidenceScanner(rg_command=str(broken_rg))

        scan = await scanner.scan(_entry("Implemented full OAuth2 flow"), repo)

        assert scan.summary.total_keywords > 0
        assert scan.summary.failed_searches == scan.summary.total_keywords
        assert scan.summary.successful_searches == 0
        assert len(scan.warnings) == scan.summary.total_keywords
        assert "internal error" in scan.warnings[0]
        assert scan.keyword_matches == []

    async def test_count_mismatch(self, repo: Path):
        scan = await EvidenceScanner().scan(_entry("Added 8 templates"), repo)
        (check,) = scan.count_checks
        assert check.claimed_count == 8
        assert check.actual_count == 3
        assert check.matches is False
        assert check.source_location == "src/templates.py:1"

    async def test_count_match(self, repo: Path):
        scan = await EvidenceScanner().scan(_entry("Added 3 templates"), repo)
        (check,) = scan.count_checks
        assert check.matches is True

    async def test_unknown_count(self, repo: Path):
        scan = await EvidenceScanner().scan(_entry("Added 4 exporters"), repo)
        (check,) = scan.count_checks
        assert check.actual_count is None
        assert check.matches is None

    async def test_stub_search_limited_to_context_window(self, tmp_path: Path):
        root = tmp_path / "far"
        root.mkdir()
        lines = ["def exporter():", "    return 1"] + ["x = 0"] * 20 + ["# TODO unrelated"]
        (root / "export.py").write_text("\n".join(lines) + "\n")
        scanner = EvidenceScanner(VerificationConfig(stub_context_lines=3))

        scan = await scanner.scan(_entry("Added exporter"), root)

        assert scan.keyword_matches
        assert all(m.appears_complete for m in scan.keyword_matches)
        assert scan.stub_findings == set()

    @pytest.mark.parametrize("description,matches", [
        ("Added 3 locales", True),
        ("Added 6 locales", False),
    ])
    async def test_count_by_matching_files(self, tmp_path: Path, description, matches):
        root = tmp_path / "i18n"
        (root / "locales").mkdir(parents=True)
        for code in ("en", "fr", "de"):
            (root / "locales" / f"{code}.py").write_text("GREETING = 'hello'\n")
        (root / "locales" / "README.md").write_text("translations\n")

        scan = await EvidenceScanner().scan(_entry(description), root)

        (check,) = scan.count_checks
        assert check.actual_count == 3
        assert check.matches is matches
        assert check.source_location == "files matching *locale*"

    async def test_file_count_ignores_build_directories(self, tmp_path: Path):
        searcher = RepoSearcher(tmp_path, rg_command=None)
        (tmp_path / "plugins").mkdir()
        (tmp_path / "plugins" / "alpha.py").write_text("")
        (tmp_path / "node_modules" / "plugins").mkdir(parents=True)
        (tmp_path / "node_modules" / "plugins" / "vendored.js").write_text("")

        assert await searcher.count_files("plugin") == 1
        assert await searcher.count_files("") == 0
