"""
Smart code validation.

A smart code is a dotted taxonomy string such as
``HERA.SALON.SALE.TXN.RETAIL.v1``: the literal ``HERA``, four to nine
uppercase segments, then a lowercase ``v`` version suffix.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from .violations import Violation, error

SMART_CODE_PATTERN = r"HERA\.[A-Z0-9]+(\.[A-Z0-9_]+){3,8}\.v[0-9]+"

_SMART_CODE_RE = re.compile(SMART_CODE_PATTERN)
_UPPER_VERSION_RE = re.compile(r"\.V([0-9]+)$")


class SmartCodeError(ValueError):
    """Raised when a smart code does not match the required format."""


@dataclass(frozen=True)
class SmartCode:
    """Parsed smart code."""

    raw: str
    segments: tuple[str, ...]
    version: int

    @property
    def domain(self) -> str:
        return self.segments[0]

    def has_segment(self, segment: str) -> bool:
        return segment in self.segments

    def __str__(self) -> str:
        return self.raw


def is_valid_smart_code(value: Any) -> bool:
    """True iff ``value`` is a string that fully matches the smart code format."""
    if not isinstance(value, str):
        return False
    return _SMART_CODE_RE.fullmatch(value) is not None


def parse_smart_code(value: str) -> SmartCode:
    if not is_valid_smart_code(value):
        raise SmartCodeError(f"Invalid smart code: {value!r}")
    parts = value.split(".")
    return SmartCode(raw=value, segments=tuple(parts[1:-1]), version=int(parts[-1][1:]))


def normalize_smart_code(value: str) -> str:
    """Strip whitespace and lower-case an uppercase ``.V<n>`` suffix."""
    return _UPPER_VERSION_RE.sub(lambda m: f".v{m.group(1)}", value.strip())


def validate_smart_code(value: Any, *, label: str = "smart_code", required: bool = True) -> list[Violation]:
    """
    Guardrail form of the format check.

    Returns an empty list when the code is valid (or absent and not
    required).
    """
    if value is None or value == "":
        if not required:
            return []
        return [error("SMARTCODE-REQUIRED", f"{label} is required", field=label)]

    if is_valid_smart_code(value):
        return []

    if isinstance(value, str):
        fixed = normalize_smart_code(value)
        if fixed != value.strip() and is_valid_smart_code(fixed):
            return [
                error(
                    "SMARTCODE-VERSION-CASE",
                    f"{label} version suffix must be lowercase: use {fixed}",
                    field=label,
                    value=value,
                    suggestion=fixed,
                )
            ]

    return [
        error(
            "SMARTCODE-FORMAT",
            f"{label} must match HERA.<DOMAIN>.<SEGMENT>... .v<N>",
            field=label,
            value=value if isinstance(value, str) else repr(value),
        )
    ]
