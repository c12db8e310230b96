"""Anchor-proximity field scanning and numeric disambiguation.

For a FieldRule, every line that matches one of its anchors opens a window of
that line plus ``lookahead_lines`` following lines. The numbers found in the
window, in reading order, are the candidates; the disambiguator keeps only the
ones inside the rule's plausible range and picks one by column position.
"""

from __future__ import annotations

import logging
import re
from typing import Iterator, Sequence

from pdf_extract import extract_candidates, normalize_number
from pdf_models import AnchorHit, ColumnSelector, ExtractedField, FieldRule, Line, NumericCandidate
from pdf_sections import matches_any

logger = logging.getLogger(__name__)

__all__ = [
    "extract_field",
    "in_range",
    "normalize_number",
    "scan_field",
    "select_candidate",
]


def _is_anchor(line: Line, rule: FieldRule) -> bool:
    if not matches_any(line.text, rule.anchor_patterns):
        return False
    return not matches_any(line.text, rule.exclude_patterns)


def scan_field(
    lines: Sequence[Line],
    rule: FieldRule,
    boundaries: Sequence[re.Pattern] = (),
    offset: int = 0,
) -> Iterator[AnchorHit]:
    """Yield one AnchorHit per anchor line in *lines*.

    A following line that matches the rule's own anchors, or *boundaries*
    (typically every anchor of the rule set), closes the window early and is
    not scanned.
    """
    stops = tuple(rule.anchor_patterns) + tuple(boundaries)
    for i, line in enumerate(lines):
        if not _is_anchor(line, rule):
            continue

        candidates: list[NumericCandidate] = list(
            extract_candidates(line, rule.numeric_pattern, offset + i)
        )
        last = min(len(lines), i + 1 + rule.lookahead_lines)
        for j in range(i + 1, last):
            following = lines[j]
            if matches_any(following.text, stops):
                break
            candidates.extend(
                extract_candidates(
                    following,
                    rule.numeric_pattern,
                    offset + j,
                    start_position=len(candidates),
                )
            )

        yield AnchorHit(line_index=offset + i, candidates=tuple(candidates))


def in_range(value: float, plausible_range: tuple[float, float] | None) -> bool:
    if plausible_range is None:
        return True
    low, high = plausible_range
    return low <= value <= high


def select_candidate(
    candidates: Sequence[NumericCandidate],
    plausible_range: tuple[float, float] | None,
    selector: ColumnSelector = ColumnSelector.FIRST,
    column_index: int = 0,
) -> NumericCandidate | None:
    """Pick the candidate for *selector* among those inside *plausible_range*.

    Out-of-range candidates are skipped, not counted as columns. Returns None
    when too few candidates qualify.
    """
    qualifying = [c for c in candidates if in_range(c.value, plausible_range)]
    if not qualifying:
        return None

    if selector is ColumnSelector.FIRST:
        index = 0
    elif selector is ColumnSelector.SECOND:
        index = 1
    elif selector is ColumnSelector.NTH:
        index = column_index
    else:
        return qualifying[-1]

    if index < 0 or index >= len(qualifying):
        return None
    return qualifying[index]


def extract_field(
    lines: Sequence[Line],
    rule: FieldRule,
    boundaries: Sequence[re.Pattern] = (),
    offset: int = 0,
) -> ExtractedField | None:
    """Return the value from the first anchor occurrence that yields one."""
    for hit in scan_field(lines, rule, boundaries, offset):
        if not hit.candidates:
            logger.debug("%s: anchor at line %d has no numbers", rule.label, hit.line_index)
            continue

        chosen = select_candidate(
            hit.candidates, rule.plausible_range, rule.column_selector, rule.column_index
        )
        if chosen is None:
            logger.debug(
                "%s: no %s candidate in range %s at line %d (saw %s)",
                rule.label,
                rule.column_selector.value,
                rule.plausible_range,
                hit.line_index,
                [c.raw_text for c in hit.candidates],
            )
            continue

        return ExtractedField(
            label=rule.label,
            raw_text=chosen.raw_text,
            numeric_value=chosen.value,
            source_line=chosen.line_index,
        )

    return None
