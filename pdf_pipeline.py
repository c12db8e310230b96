"""Run the extraction pipeline on one document.

Stages, all pure and deterministic for a given token list:
  1. reconstruct_lines   – cluster tokens into ordered lines
  2. locate_chain        – narrow to the configured report section
  3. extract_field       – anchor window scan + range/column disambiguation, per FieldRule
  4. detect_unit_scale   – record the unit the section is stated in
  5. build_result        – confidence tier, or None without a total

Document acquisition (fetch_document_tokens) is the only step that does I/O.
"""

from __future__ import annotations

import io
import logging
from datetime import datetime
from pathlib import Path
from typing import Sequence

import httpx

from pdf_context import detect_unit_scale
from pdf_errors import MalformedInputError
from pdf_extract import reconstruct_lines, tokens_from_pdf
from pdf_fields import extract_field
from pdf_models import ExtractedField, ExtractionResult, FieldScope, Line, Section, SourceRules, Token
from pdf_scoring import build_result
from pdf_sections import locate_chain
from pdf_settings import settings

logger = logging.getLogger(__name__)


def _boundaries(rules: SourceRules) -> tuple:
    return tuple(p for rule in rules.fields for p in rule.anchor_patterns)


def extract_fields(
    lines: Sequence[Line],
    section: Section,
    rules: SourceRules,
) -> dict[str, ExtractedField | None]:
    """Extract every FieldRule of *rules*; absent fields map to None."""
    boundaries = _boundaries(rules)
    if section.found:
        window, offset = section.lines, section.start_index
    elif rules.fallback_to_document:
        window, offset = tuple(lines), 0
    else:
        window, offset = (), 0

    fields: dict[str, ExtractedField | None] = {}
    for rule in rules.fields:
        if rule.scope is FieldScope.DOCUMENT:
            fields[rule.label] = extract_field(lines, rule, boundaries, 0)
        else:
            fields[rule.label] = extract_field(window, rule, boundaries, offset)

        found = fields[rule.label]
        if found is None:
            logger.info("%s: %s not found", rules.entity_id, rule.label)
        else:
            logger.info(
                "%s: %s = %s (line %d)",
                rules.entity_id,
                rule.label,
                found.raw_text,
                found.source_line,
            )
    return fields


def run_pipeline(
    tokens: Sequence[Token],
    rules: SourceRules,
    extracted_at: datetime | None = None,
) -> ExtractionResult | None:
    """Extract *rules* from one document's tokens.

    Raises MalformedInputError when the document has no text. Every per-field
    or per-section miss is soft and only lowers confidence; a missing total
    field returns None.
    """
    if not tokens:
        raise MalformedInputError("document has no tokens", rules.entity_id)

    tolerance = rules.line_tolerance if rules.line_tolerance is not None else settings.LINE_TOLERANCE
    lines = reconstruct_lines(tokens, tolerance)
    if not lines:
        raise MalformedInputError("document has no text", rules.entity_id)
    logger.debug("%s: %d tokens -> %d lines", rules.entity_id, len(tokens), len(lines))

    section = locate_chain(lines, rules.sections)
    if section.found:
        logger.debug(
            "%s: section lines %d-%d", rules.entity_id, section.start_index, section.end_index
        )
    else:
        logger.info(
            "%s: section not found%s",
            rules.entity_id,
            ", scanning whole document" if rules.fallback_to_document else "",
        )

    fields = extract_fields(lines, section, rules)
    unit = detect_unit_scale(lines, section)
    return build_result(rules, fields, unit=unit, extracted_at=extracted_at)


def fetch_document_tokens(rules: SourceRules, timeout: float | None = None) -> list[Token]:
    """Load the document a rule file points at (URL or local path) into tokens."""
    location = rules.document
    if not location:
        raise MalformedInputError("rule file names no document", rules.entity_id)

    if location.startswith(("http://", "https://")):
        try:
            response = httpx.get(
                location,
                timeout=timeout or settings.FETCH_TIMEOUT_SECONDS,
                follow_redirects=True,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise MalformedInputError(f"download failed: {e}", rules.entity_id) from e
        logger.info("%s: downloaded %d bytes", rules.entity_id, len(response.content))
        source: Path | io.BytesIO = io.BytesIO(response.content)
    else:
        source = Path(location)
        if not source.exists():
            raise MalformedInputError(f"file not found: {source}", rules.entity_id)

    try:
        return tokens_from_pdf(source)
    except Exception as e:
        raise MalformedInputError(f"cannot read PDF: {e}", rules.entity_id) from e
