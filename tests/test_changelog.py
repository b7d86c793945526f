"""Tests for changelog entry types."""

from __future__ import annotations

import pytest

from hallmark.changelog import ChangelogCategory, ChangelogEntry, ChangelogOutput


class TestChangelogCategory:
    @pytest.mark.parametrize("raw", ["added", "ADDED", " Added "])
    def test_parse_is_case_insensitive(self, raw):
        assert ChangelogCategory.parse(raw) is ChangelogCategory.ADDED

    def test_parse_unknown(self):
        with pytest.raises(ValueError, match="Unknown category"):
            ChangelogCategory.parse("Misc")

    def test_order_follows_keep_a_changelog(self):
        names = [c.value for c in sorted(ChangelogCategory, key=lambda c: c.order)]
        assert names == ["Added", "Changed", "Deprecated", "Removed", "Fixed", "Security"]


class TestChangelogOutput:
    def test_from_dict(self):
        output = ChangelogOutput.from_dict({
            "entries": [
                {"category": "fixed", "description": "Crash on empty input"},
                {"category": "Security", "description": "Escape HTML in titles"},
            ],
        })
        assert output.entries == (
            ChangelogEntry(ChangelogCategory.FIXED, "Crash on empty input"),
            ChangelogEntry(ChangelogCategory.SECURITY, "Escape HTML in titles"),
        )

    def test_to_dict_uses_display_names(self):
        output = ChangelogOutput((ChangelogEntry(ChangelogCategory.ADDED, "X"),))
        assert output.to_dict() == {
            "entries": [{"category": "Added", "description": "X"}],
        }

    @pytest.mark.parametrize("data", [
        [],
        {},
        {"entries": "nope"},
        {"entries": [1]},
        {"entries": [{"category": "Added"}]},
        {"entries": [{"category": "Added", "description": 3}]},
        {"entries": [{"category": "Other", "description": "x"}]},
    ])
    def test_schema_errors(self, data):
        with pytest.raises(ValueError):
            ChangelogOutput.from_dict(data)

    def test_empty_entries_allowed(self):
        assert ChangelogOutput.from_dict({"entries": []}).entries == ()
