"""Tests for evidence records, report status, and aggregation."""

from __future__ import annotations

import json

import pytest

from hallmark.changelog import ChangelogCategory, ChangelogEntry
from hallmark.verification.aggregator import aggregate
from hallmark.verification.evidence import (
    ConfidenceBand,
    CountCheck,
    EntryEvidence,
    KeyFileExcerpt,
    KeywordMatch,
    ReportStatus,
    ScanSummary,
    Verdict,
    VerificationReport,
)
from hallmark.verification.stubs import StubCategory, StubFinding

ENTRIES = [
    ChangelogEntry(ChangelogCategory.ADDED, "Bybit exchange support"),
    ChangelogEntry(ChangelogCategory.FIXED, "Crash on empty config"),
    ChangelogEntry(ChangelogCategory.CHANGED, "Faster search"),
]


def _evidence(position: int, confidence: int = 100, warnings: tuple[str, ...] = ()) -> EntryEvidence:
    return EntryEvidence(
        position=position,
        entry=ENTRIES[position],
        confidence=confidence,
        warnings=warnings,
    )


class TestScanSummary:
    def test_counts_must_add_up(self):
        with pytest.raises(ValueError):
            ScanSummary(total_keywords=3, successful_searches=1, failed_searches=1)

    def test_rejects_negative(self):
        with pytest.raises(ValueError):
            ScanSummary(total_keywords=-1, successful_searches=0, failed_searches=-1)


class TestEntryEvidence:
    @pytest.mark.parametrize("score,band", [
        (100, ConfidenceBand.HIGH),
        (70, ConfidenceBand.HIGH),
        (69, ConfidenceBand.MEDIUM),
        (40, ConfidenceBand.MEDIUM),
        (39, ConfidenceBand.LOW),
        (0, ConfidenceBand.LOW),
    ])
    def test_bands(self, score, band):
        assert ConfidenceBand.from_score(score) is band

    @pytest.mark.parametrize("confidence", [-1, 101])
    def test_confidence_out_of_range(self, confidence):
        with pytest.raises(ValueError):
            _evidence(0, confidence=confidence)

    def test_verdicts(self):
        assert _evidence(0).verdict is Verdict.KEEP
        assert _evidence(0, 85, ("stub (-15)",)).verdict is Verdict.FLAG
        assert _evidence(0, 40, ("x",)).verdict is Verdict.FLAG
        assert _evidence(0, 30, ("x",)).verdict is Verdict.DISCARD

    def test_degraded_iff_warnings(self):
        assert not _evidence(0).degraded
        assert _evidence(0, 90, ("w",)).degraded

    def test_to_dict_is_json_serialisable(self):
        evidence = EntryEvidence(
            position=0,
            entry=ENTRIES[0],
            scan_summary=ScanSummary(2, 1, 1),
            keyword_matches=(KeywordMatch("bybit", ("src/bybit.rs",), 4, ("src/bybit.rs:1: mod bybit;",)),),
            count_checks=(CountCheck("3 pairs", 3, 2, "src/pairs.rs:10"),),
            stub_findings=(StubFinding(StubCategory.TODO, "src/bybit.rs", 7, "// TODO"),),
            confidence=55,
            warnings=("1 keyword search(es) could not run (-10)",),
        )
        data = json.loads(json.dumps(evidence.to_dict()))
        assert data["verdict"] == "flag"
        assert data["band"] == "medium"
        assert data["count_checks"][0]["matches"] is False
        assert data["stub_findings"][0]["file"] == "src/bybit.rs"


class TestVerificationReport:
    def test_empty(self):
        report = VerificationReport()
        assert report.status is ReportStatus.EMPTY
        assert not report.degraded
        assert report.kept_entries() == []

    def test_all_unverifiable_differs_from_empty(self):
        report = aggregate(ENTRIES[:2], [_evidence(0, 10, ("w",)), _evidence(1, 0, ("w",))])
        assert report.status is ReportStatus.ALL_UNVERIFIABLE
        assert report.kept_entries() == []

    def test_degraded_and_ok(self):
        assert aggregate(ENTRIES[:2], [_evidence(0), _evidence(1)]).status is ReportStatus.OK
        degraded = aggregate(ENTRIES[:2], [_evidence(0), _evidence(1, 20, ("w",))])
        assert degraded.status is ReportStatus.DEGRADED
        assert degraded.kept_entries() == [ENTRIES[0]]
        assert [e.position for e in degraded.low_confidence_entries()] == [1]

    def test_total_failed_searches(self):
        failing = EntryEvidence(
            position=0,
            entry=ENTRIES[0],
            scan_summary=ScanSummary(3, 1, 2),
            confidence=80,
            warnings=("w",),
        )
        report = aggregate(ENTRIES[:1], [failing])
        assert report.total_failed_searches == 2

    def test_to_dict(self):
        report = aggregate(
            ENTRIES[:1],
            [_evidence(0)],
            project_structure="src/\n  main.rs",
            key_files=[KeyFileExcerpt("Cargo.toml", "[package]")],
        )
        data = json.loads(json.dumps(report.to_dict()))
        assert data["status"] == "ok"
        assert data["key_files"][0]["path"] == "Cargo.toml"
        assert data["entries"][0]["description"] == "Bybit exchange support"


class TestAggregate:
    def test_out_of_order_evidence_is_reordered(self):
        report = aggregate(ENTRIES, [_evidence(2), _evidence(0), _evidence(1)])
        assert [e.entry for e in report.entries] == ENTRIES
        assert [e.position for e in report.entries] == [0, 1, 2]

    def test_no_entries(self):
        assert aggregate([], []).status is ReportStatus.EMPTY

    def test_duplicate_position(self):
        with pytest.raises(ValueError, match="duplicate"):
            aggregate(ENTRIES[:1], [_evidence(0), _evidence(0)])

    def test_missing_position(self):
        with pytest.raises(ValueError, match="no evidence"):
            aggregate(ENTRIES, [_evidence(0), _evidence(2)])

    def test_position_out_of_range(self):
        with pytest.raises(ValueError, match="has no entry"):
            aggregate(ENTRIES[:1], [_evidence(0), _evidence(1)])

    def test_evidence_for_a_different_entry(self):
        other = EntryEvidence(position=0, entry=ENTRIES[1])
        with pytest.raises(ValueError, match="another entry"):
            aggregate(ENTRIES, [other, _evidence(1), _evidence(2)])
