"""Tests for SARIF normalization."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from reposcan.errors import MalformedReportError
from reposcan.scanner.models import FindingsReport, Severity
from reposcan.scanner.sarif import classify, normalize, normalize_document


def _document(rules=None, results=None) -> dict:
    return {
        "version": "2.1.0",
        "runs": [
            {
                "tool": {"driver": {"name": "CodeQL", "rules": rules or []}},
                "results": results or [],
            }
        ],
    }


def _rule(rule_id: str, score: str | None = None, **extra) -> dict:
    rule = {"id": rule_id, **extra}
    if score is not None:
        rule["properties"] = {"security-severity": score}
    return rule


def _result(rule_id: str, level: str | None = None, **extra) -> dict:
    result = {"ruleId": rule_id, "message": {"text": f"{rule_id} found"}, **extra}
    if level is not None:
        result["level"] = level
    return result


class TestClassify:
    @pytest.mark.parametrize(
        "score,level,expected",
        [
            (9.5, None, Severity.CRITICAL),
            (9.0, "note", Severity.CRITICAL),
            (8.8, "warning", Severity.HIGH),
            (7.0, None, Severity.HIGH),
            (6.0, "error", Severity.MEDIUM),
            (4.0, None, Severity.MEDIUM),
            (0.0, "error", Severity.HIGH),
            (0.0, "warning", Severity.MEDIUM),
            (0.0, "note", Severity.LOW),
            (0.0, None, Severity.LOW),
            (2.5, "error", Severity.LOW),
        ],
    )
    def test_bands(self, score, level, expected):
        assert classify(score, level) is expected


class TestNormalize:
    def test_sample_report(self, sample_sarif: Path):
        report = normalize(sample_sarif)

        assert [f.rule_id for f in report.findings] == [
            "js/code-injection",
            "js/sql-injection",
            "js/missing-rate-limiting",
            "js/sql-injection",
            "js/unused-local-variable",
        ]
        assert report.summary.to_dict() == {
            "total": 5,
            "critical": 1,
            "high": 3,
            "medium": 0,
            "low": 1,
        }

        first_sql = report.findings[1]
        assert first_sql.name == "Database query built from user-controlled sources"
        assert first_sql.description.startswith("Building a database query")
        assert first_sql.numeric_severity == 8.8
        assert first_sql.file == "server/db.js"
        assert (first_sql.line, first_sql.column) == (42, 15)
        assert first_sql.tags == ("security", "external/cwe/cwe-089")
        assert report.findings[3].line == 77

    def test_missing_column_defaults_to_zero(self, sample_sarif: Path):
        report = normalize(sample_sarif)
        rate_limit = next(
            f for f in report.findings if f.rule_id == "js/missing-rate-limiting"
        )
        assert rate_limit.line == 10
        assert rate_limit.column == 0

    def test_deterministic(self, sample_sarif: Path):
        assert normalize(sample_sarif) == normalize(sample_sarif)

    def test_summary_invariant(self, sample_sarif: Path):
        report = normalize(sample_sarif)
        s = report.summary
        assert s.total == len(report.findings)
        assert s.total == s.critical + s.high + s.medium + s.low

    def test_sorted_by_severity_rank(self, sample_sarif: Path):
        ranks = [f.severity.rank for f in normalize(sample_sarif).findings]
        assert all(a <= b for a, b in zip(ranks, ranks[1:]))

    def test_score_takes_precedence_over_level(self):
        doc = _document(
            rules=[_rule("r1", "6.0")],
            results=[_result("r1", "error")],
        )
        [finding] = normalize_document(doc).findings
        assert finding.severity is Severity.MEDIUM

    def test_level_used_without_score(self):
        doc = _document(rules=[_rule("r1")], results=[_result("r1", "warning")])
        [finding] = normalize_document(doc).findings
        assert finding.severity is Severity.MEDIUM
        assert finding.numeric_severity == 0.0

    def test_unparseable_score_is_zero(self):
        doc = _document(
            rules=[_rule("r1", "not-a-number"), _rule("r2", "nan")],
            results=[_result("r1", "error"), _result("r2", "warning")],
        )
        findings = normalize_document(doc).findings
        assert [f.severity for f in findings] == [Severity.HIGH, Severity.MEDIUM]
        assert all(f.numeric_severity == 0.0 for f in findings)

    def test_name_fallbacks(self):
        doc = _document(
            rules=[
                _rule("r1", shortDescription={"text": "Short"}, name="raw-name"),
                _rule("r2", name="raw-name"),
                _rule("r3"),
            ],
            results=[_result("r1"), _result("r2"), _result("r3"), _result("r4")],
        )
        names = [f.name for f in normalize_document(doc).findings]
        assert names == ["Short", "raw-name", "r3", "r4"]

    def test_unknown_rule_uses_defaults(self):
        doc = _document(results=[_result("ghost", "error")])
        [finding] = normalize_document(doc).findings
        assert finding.severity is Severity.HIGH
        assert finding.description == ""
        assert finding.tags == ()

    def test_missing_location(self):
        doc = _document(results=[{"ruleId": "r1"}])
        [finding] = normalize_document(doc).findings
        assert (finding.file, finding.line, finding.column) == ("", 0, 0)
        assert finding.message == ""

    def test_out_of_range_position_defaults_to_zero(self, tmp_path: Path):
        path = tmp_path / "huge.sarif"
        path.write_text(
            '{"runs": [{"results": [{"ruleId": "r1", "locations": [{'
            '"physicalLocation": {"artifactLocation": {"uri": "a.js"}, '
            '"region": {"startLine": 1e400, "startColumn": -3}}}]}]}]}'
        )
        [finding] = normalize(path).findings
        assert (finding.file, finding.line, finding.column) == ("a.js", 0, 0)

    def test_rule_id_from_rule_reference(self):
        doc = _document(
            rules=[_rule("r1", "9.1")],
            results=[{"rule": {"id": "r1"}, "level": "note"}],
        )
        [finding] = normalize_document(doc).findings
        assert finding.rule_id == "r1"
        assert finding.severity is Severity.CRITICAL

    def test_stable_among_equal_severity(self):
        results = [
            _result("a", "warning", message={"text": "first"}),
            _result("b", "error"),
            _result("c", "warning", message={"text": "second"}),
        ]
        findings = normalize_document(_document(results=results)).findings
        assert [f.rule_id for f in findings] == ["b", "a", "c"]
        assert [f.message for f in findings[1:]] == ["first", "second"]

    def test_empty_run(self):
        report = normalize_document(_document())
        assert report.findings == ()
        assert report.summary.total == 0


class TestMalformed:
    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(MalformedReportError):
            normalize(tmp_path / "missing.sarif")

    def test_invalid_json(self, tmp_path: Path):
        path = tmp_path / "bad.sarif"
        path.write_text("{not json")
        with pytest.raises(MalformedReportError):
            normalize(path)

    @pytest.mark.parametrize(
        "data",
        [[], "text", {}, {"runs": []}, {"runs": "x"}, {"runs": [None]}],
    )
    def test_no_primary_run(self, tmp_path: Path, data):
        path = tmp_path / "report.sarif"
        path.write_text(json.dumps(data))
        with pytest.raises(MalformedReportError):
            normalize(path)


class TestReportSerialization:
    def test_to_dict_uses_camel_case(self, sample_sarif: Path):
        data = normalize(sample_sarif).to_dict()
        finding = data["findings"][0]
        assert finding["ruleId"] == "js/code-injection"
        assert finding["severity"] == "critical"
        assert finding["numericSeverity"] == 9.3
        assert data["summary"]["total"] == 5

    def test_from_dict_restores_report(self, sample_sarif: Path):
        report = normalize(sample_sarif)
        assert FindingsReport.from_dict(report.to_dict()) == report
