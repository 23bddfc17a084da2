"""Guardrail finding types shared by the validators."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Severity(str, Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"


@dataclass(frozen=True)
class Violation:
    """A single guardrail finding."""

    code: str
    message: str
    severity: Severity = Severity.ERROR
    context: dict[str, Any] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
        }
        if self.context:
            data["context"] = self.context
        return data


def error(code: str, message: str, **context: Any) -> Violation:
    return Violation(code=code, message=message, severity=Severity.ERROR, context=context)


def warning(code: str, message: str, **context: Any) -> Violation:
    return Violation(code=code, message=message, severity=Severity.WARNING, context=context)


@dataclass
class GuardrailResult:
    """
    Outcome of one or more guardrail checks.

    ``passed`` is False as soon as any ERROR-severity violation is present;
    warnings never fail a request.
    """

    violations: list[Violation] = field(default_factory=list)
    rules_checked: list[str] = field(default_factory=list)

    @property
    def errors(self) -> list[Violation]:
        return [v for v in self.violations if v.is_error]

    @property
    def warnings(self) -> list[Violation]:
        return [v for v in self.violations if not v.is_error]

    @property
    def passed(self) -> bool:
        return not self.errors

    def add(self, *violations: Violation) -> "GuardrailResult":
        self.violations.extend(violations)
        return self

    def extend(self, violations: list[Violation]) -> "GuardrailResult":
        self.violations.extend(violations)
        return self

    def merge(self, other: "GuardrailResult") -> "GuardrailResult":
        self.violations.extend(other.violations)
        for rule in other.rules_checked:
            if rule not in self.rules_checked:
                self.rules_checked.append(rule)
        return self

    def error_dicts(self) -> list[dict[str, Any]]:
        return [v.to_dict() for v in self.errors]

    def warning_dicts(self) -> list[dict[str, Any]]:
        return [v.to_dict() for v in self.warnings]

    def report(self) -> str:
        """Human-readable summary used in logs."""
        status = "PASSED" if self.passed else "FAILED"
        lines = [
            f"Guardrail check {status}: {len(self.errors)} error(s), "
            f"{len(self.warnings)} warning(s)"
        ]
        for v in self.violations:
            lines.append(f"  [{v.severity.value}] {v.code}: {v.message}")
        return "\n".join(lines)
