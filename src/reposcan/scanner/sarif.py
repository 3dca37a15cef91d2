"""Normalize SARIF analysis output into a severity-ranked findings report.

The analysis engine reports severity two ways: a numeric
``security-severity`` score on rules that define one, and a qualitative
``level`` on every result. The score decides whenever it is non-zero; the
level is only consulted for rules without a score.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from reposcan.errors import MalformedReportError
from reposcan.scanner.models import Finding, FindingsReport, Severity

_SECURITY_SEVERITY_PROPERTY = "security-severity"

# (minimum score, severity), checked in order
_SCORE_BANDS: tuple[tuple[float, Severity], ...] = (
    (9.0, Severity.CRITICAL),
    (7.0, Severity.HIGH),
    (4.0, Severity.MEDIUM),
)

_LEVEL_SEVERITY = {
    "error": Severity.HIGH,
    "warning": Severity.MEDIUM,
}


@dataclass(frozen=True)
class RuleInfo:
    """Metadata for one rule from the tool driver section."""

    name: str = ""
    description: str = ""
    score: float = 0.0
    tags: tuple[str, ...] = ()


def classify(score: float, level: str | None) -> Severity:
    """Map a numeric score and a result level to a severity."""
    if score:
        for minimum, severity in _SCORE_BANDS:
            if score >= minimum:
                return severity
        return Severity.LOW
    return _LEVEL_SEVERITY.get(level or "", Severity.LOW)


def normalize(report_path: str | Path) -> FindingsReport:
    """Read a SARIF file and return its normalized findings."""
    try:
        text = Path(report_path).read_text(encoding="utf-8")
    except OSError as e:
        raise MalformedReportError(f"Cannot read analysis report: {e}") from e
    try:
        data = json.loads(text)
    except ValueError as e:
        raise MalformedReportError(f"Analysis report is not valid JSON: {e}") from e
    return normalize_document(data)


def normalize_document(data: Any) -> FindingsReport:
    """Normalize an already-parsed SARIF document."""
    if not isinstance(data, dict):
        raise MalformedReportError("Analysis report must be a JSON object")
    runs = data.get("runs")
    if not isinstance(runs, list) or not runs or not isinstance(runs[0], dict):
        raise MalformedReportError("Analysis report contains no runs")
    run = runs[0]

    rules = _read_rules(run)
    findings = [
        _to_finding(result, rules)
        for result in _as_list(run.get("results"))
        if isinstance(result, dict)
    ]
    return FindingsReport.build(findings)


def _read_rules(run: dict) -> dict[str, RuleInfo]:
    driver = _get(run, "tool", "driver")
    rules: dict[str, RuleInfo] = {}
    for rule in _as_list(driver.get("rules") if isinstance(driver, dict) else None):
        if not isinstance(rule, dict) or not rule.get("id"):
            continue
        rule_id = str(rule["id"])
        properties = rule.get("properties")
        if not isinstance(properties, dict):
            properties = {}
        rules[rule_id] = RuleInfo(
            name=_text(rule, "shortDescription") or rule.get("name") or rule_id,
            description=_text(rule, "fullDescription"),
            score=_parse_score(properties.get(_SECURITY_SEVERITY_PROPERTY)),
            tags=tuple(str(t) for t in _as_list(properties.get("tags"))),
        )
    return rules


def _to_finding(result: dict, rules: dict[str, RuleInfo]) -> Finding:
    rule_id = str(result.get("ruleId") or _get(result, "rule", "id") or "")
    rule = rules.get(rule_id, RuleInfo())

    location = {}
    for loc in _as_list(result.get("locations")):
        physical = _get(loc, "physicalLocation")
        if isinstance(physical, dict):
            location = physical
            break

    return Finding(
        rule_id=rule_id,
        name=rule.name or rule_id,
        description=rule.description,
        message=_text(result, "message"),
        severity=classify(rule.score, result.get("level")),
        numeric_severity=rule.score,
        file=str(_get(location, "artifactLocation", "uri") or ""),
        line=_non_negative(_get(location, "region", "startLine")),
        column=_non_negative(_get(location, "region", "startColumn")),
        tags=rule.tags,
    )


def _parse_score(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    return score if math.isfinite(score) else 0.0


def _non_negative(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError, OverflowError):
        return 0


def _text(obj: dict, key: str) -> str:
    text = _get(obj, key, "text")
    return text if isinstance(text, str) else ""


def _get(obj: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []
