"""Scanner data models — findings and normalized reports."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any


class Severity(enum.Enum):
    """Finding severity level, declared from most to least severe."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {severity: i for i, severity in enumerate(Severity)}


@dataclass(frozen=True)
class Finding:
    """A single normalized analysis finding."""

    rule_id: str
    name: str
    description: str
    message: str
    severity: Severity
    numeric_severity: float
    file: str
    line: int
    column: int
    tags: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "ruleId": self.rule_id,
            "name": self.name,
            "description": self.description,
            "message": self.message,
            "severity": self.severity.value,
            "numericSeverity": self.numeric_severity,
            "file": self.file,
            "line": self.line,
            "column": self.column,
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Finding:
        return cls(
            rule_id=data.get("ruleId") or "",
            name=data.get("name") or "",
            description=data.get("description") or "",
            message=data.get("message") or "",
            severity=Severity(data.get("severity", "low")),
            numeric_severity=float(data.get("numericSeverity") or 0.0),
            file=data.get("file") or "",
            line=int(data.get("line") or 0),
            column=int(data.get("column") or 0),
            tags=tuple(data.get("tags") or ()),
        )


@dataclass(frozen=True)
class Summary:
    """Finding counts per severity."""

    total: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "critical": self.critical,
            "high": self.high,
            "medium": self.medium,
            "low": self.low,
        }


@dataclass(frozen=True)
class FindingsReport:
    """Severity-ordered findings with a summary derived from them."""

    findings: tuple[Finding, ...] = ()
    summary: Summary = field(default_factory=Summary)

    @classmethod
    def build(cls, findings: list[Finding]) -> FindingsReport:
        """Sort findings by severity (stable) and count them."""
        ordered = tuple(sorted(findings, key=lambda f: f.severity.rank))
        counts = {
            severity: sum(1 for f in ordered if f.severity is severity)
            for severity in Severity
        }
        summary = Summary(
            total=len(ordered),
            critical=counts[Severity.CRITICAL],
            high=counts[Severity.HIGH],
            medium=counts[Severity.MEDIUM],
            low=counts[Severity.LOW],
        )
        return cls(findings=ordered, summary=summary)

    def to_dict(self) -> dict[str, Any]:
        return {
            "findings": [f.to_dict() for f in self.findings],
            "summary": self.summary.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FindingsReport:
        return cls.build([Finding.from_dict(f) for f in data.get("findings", [])])
