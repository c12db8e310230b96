from __future__ import annotations

import re
from typing import Sequence

from pdf_models import Line, Section, UnitScale

_UNIT_PATTERNS: list[tuple[re.Pattern, float]] = [
    (re.compile(r"\bin\s+billions?\b", re.IGNORECASE), 1_000_000_000),
    (re.compile(r"\bin\s+millions?\b", re.IGNORECASE), 1_000_000),
    (re.compile(r"\b(?:rs|lkr)\.?\s*(?:mn|million)\b", re.IGNORECASE), 1_000_000),
    (re.compile(r"\bin\s+thousands?\b", re.IGNORECASE), 1_000),
    (re.compile(r"\b(?:rs|lkr)\.?\s*['‘’]?000\b", re.IGNORECASE), 1_000),
]

_UNIT_SCAN_LINES = 40


def parse_unit_from_text(text: str) -> float | None:
    """Return a multiplier factor if *text* declares a known unit, else None."""
    for pattern, factor in _UNIT_PATTERNS:
        if pattern.search(text):
            return factor
    return None


def find_unit_context(lines: Sequence[Line], index: int, limit: int = _UNIT_SCAN_LINES) -> UnitScale | None:
    """Scan lines at and above *index*, closest first, for a unit declaration."""
    stop = max(-1, index - limit)
    for i in range(min(index, len(lines) - 1), stop, -1):
        factor = parse_unit_from_text(lines[i].text)
        if factor is not None:
            return UnitScale(factor=factor, evidence=f"unit header: {lines[i].text!r}")
    return None


def detect_unit_scale(lines: Sequence[Line], section: Section) -> UnitScale | None:
    """Find the unit the figures in *section* are stated in.

    Section lines are checked first (column headers usually carry the unit),
    then the lines just above the section.
    """
    if not section.found:
        for line in lines[:_UNIT_SCAN_LINES]:
            factor = parse_unit_from_text(line.text)
            if factor is not None:
                return UnitScale(factor=factor, evidence=f"document header: {line.text!r}")
        return None

    for line in section.lines:
        factor = parse_unit_from_text(line.text)
        if factor is not None:
            return UnitScale(factor=factor, evidence=f"section header: {line.text!r}")

    return find_unit_context(lines, section.start_index - 1)
