from __future__ import annotations

import logging
import re
from typing import Iterable, Sequence

from pdf_models import Line, Section, SectionRule

logger = logging.getLogger(__name__)

DEFAULT_MAX_LINES = 200


def keyword_patterns(keywords: Iterable[str]) -> tuple[re.Pattern, ...]:
    """Case-insensitive substring patterns for plain keywords."""
    return tuple(re.compile(re.escape(kw), re.IGNORECASE) for kw in keywords if kw)


def regex_patterns(expressions: Iterable[str]) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(expr, re.IGNORECASE) for expr in expressions if expr)


def matches_any(text: str, patterns: Sequence[re.Pattern]) -> bool:
    return any(p.search(text) for p in patterns)


def locate_section(
    lines: Sequence[Line],
    start_patterns: Sequence[re.Pattern],
    end_patterns: Sequence[re.Pattern] = (),
    max_lines: int = DEFAULT_MAX_LINES,
    offset: int = 0,
) -> Section:
    """Return the span opened by the first start match.

    The opening line is included and is not tested against *end_patterns*.
    Collection stops after an end match (inclusive), after *max_lines* lines,
    or at the end of *lines*. No start match gives ``Section.empty()``.
    *offset* is added to the indices so nested sections keep document indices.
    """
    if max_lines < 1:
        raise ValueError(f"max_lines must be positive, got {max_lines}")

    start = None
    for i, line in enumerate(lines):
        if matches_any(line.text, start_patterns):
            start = i
            break

    if start is None:
        return Section.empty()

    end = start + 1
    while end < len(lines) and end - start < max_lines:
        line = lines[end]
        end += 1
        if end_patterns and matches_any(line.text, end_patterns):
            break

    return Section(
        start_index=start + offset,
        end_index=end + offset,
        lines=tuple(lines[start:end]),
    )


def locate_chain(lines: Sequence[Line], rules: Sequence[SectionRule]) -> Section:
    """Apply *rules* in turn, each searching inside the previous section."""
    if not rules:
        return Section(start_index=0, end_index=len(lines), lines=tuple(lines))

    current: Sequence[Line] = lines
    offset = 0
    section = Section.empty()
    for depth, rule in enumerate(rules):
        section = locate_section(
            current,
            rule.start_patterns,
            rule.end_patterns,
            max_lines=rule.max_lines,
            offset=offset,
        )
        if not section.found:
            logger.debug("section level %d not found", depth)
            return section
        current = section.lines
        offset = section.start_index

    return section
