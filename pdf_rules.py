"""Load per-source rule files and the reference dataset.

A rule file is YAML describing one bank report::

    entity_id: HNB
    name: Hatton National Bank
    description: HNB Q3 2025 interim financials - product-wise gross loans
    document: https://example.org/hnb-3q-2025-financials.pdf
    sections:
      - start: [product-wise gross loans]
        end: [foreign currency]
    fields:
      - label: total_loans
        anchors: [sub total, subtotal]
        numeric: grouped
        range: [1100000000, 1300000000]
      - label: housing
        anchors: [housing loan]
        exclude: [foreign]
        lookahead: 0
        range: [60000000, 80000000]
    total_field: total_loans
    thresholds: {high_total: 1000000000, medium_total: 500000000}
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from pdf_errors import RuleConfigError
from pdf_extract import numeric_pattern
from pdf_models import (
    ColumnSelector,
    Confidence,
    ConfidenceThresholds,
    ExtractedField,
    ExtractionResult,
    FieldRule,
    FieldScope,
    SectionRule,
    SourceRules,
)
from pdf_sections import keyword_patterns, regex_patterns
from pdf_settings import settings

logger = logging.getLogger(__name__)

DEFAULT_LOOKAHEAD = 2
DEFAULT_HIGH_MIN_FIELDS = 4
DEFAULT_MEDIUM_MIN_FIELDS = 3


def _patterns(entry: dict, key: str, path: str | None) -> tuple[re.Pattern, ...]:
    keywords = entry.get(key) or []
    expressions = entry.get(f"{key}_regex") or []
    if isinstance(keywords, str):
        keywords = [keywords]
    if isinstance(expressions, str):
        expressions = [expressions]
    try:
        return keyword_patterns(keywords) + regex_patterns(expressions)
    except re.error as e:
        raise RuleConfigError(f"bad {key}_regex: {e}", path) from e


def _parse_range(value: Any, label: str, path: str | None) -> tuple[float, float] | None:
    if value is None:
        return None
    try:
        low, high = (float(v) for v in value)
    except (TypeError, ValueError) as e:
        raise RuleConfigError(f"field {label!r}: range must be [min, max]", path) from e
    if low > high:
        raise RuleConfigError(f"field {label!r}: range min {low} exceeds max {high}", path)
    return low, high


def parse_section(entry: dict, path: str | None = None) -> SectionRule:
    start = _patterns(entry, "start", path)
    if not start:
        raise RuleConfigError("section needs at least one start keyword", path)
    max_lines = int(entry.get("max_lines", settings.SECTION_MAX_LINES))
    if max_lines < 1:
        raise RuleConfigError(f"section max_lines must be positive, got {max_lines}", path)
    return SectionRule(
        start_patterns=start,
        end_patterns=_patterns(entry, "end", path),
        max_lines=max_lines,
    )


def parse_field(entry: dict, path: str | None = None) -> FieldRule:
    label = entry.get("label")
    if not label:
        raise RuleConfigError("field without a label", path)

    anchors = _patterns(entry, "anchors", path)
    if not anchors:
        raise RuleConfigError(f"field {label!r} has no anchors", path)

    try:
        selector = ColumnSelector(entry.get("column", ColumnSelector.FIRST.value))
        scope = FieldScope(entry.get("scope", FieldScope.SECTION.value))
    except ValueError as e:
        raise RuleConfigError(f"field {label!r}: {e}", path) from e

    try:
        pattern = numeric_pattern(entry.get("numeric"))
    except re.error as e:
        raise RuleConfigError(f"field {label!r}: bad numeric pattern: {e}", path) from e

    lookahead = int(entry.get("lookahead", DEFAULT_LOOKAHEAD))
    if lookahead < 0:
        raise RuleConfigError(f"field {label!r}: lookahead must not be negative", path)

    return FieldRule(
        label=label,
        anchor_patterns=anchors,
        numeric_pattern=pattern,
        lookahead_lines=lookahead,
        plausible_range=_parse_range(entry.get("range"), label, path),
        column_selector=selector,
        column_index=int(entry.get("column_index", 0)),
        exclude_patterns=_patterns(entry, "exclude", path),
        scope=scope,
        scored=bool(entry.get("scored", True)),
    )


def parse_source(data: dict, path: str | None = None) -> SourceRules:
    if not isinstance(data, dict):
        raise RuleConfigError("rule file must be a mapping", path)

    entity_id = data.get("entity_id")
    if not entity_id:
        raise RuleConfigError("missing entity_id", path)

    fields = tuple(parse_field(f, path) for f in data.get("fields") or [])
    if not fields:
        raise RuleConfigError("no fields declared", path)
    labels = [f.label for f in fields]
    if len(set(labels)) != len(labels):
        raise RuleConfigError(f"duplicate field labels in {labels}", path)

    total_field = data.get("total_field")
    if total_field not in labels:
        raise RuleConfigError(f"total_field {total_field!r} is not a declared field", path)

    thresholds = data.get("thresholds")
    if not isinstance(thresholds, dict):
        raise RuleConfigError("missing thresholds", path)
    scored = sum(1 for f in fields if f.scored and f.label != total_field)
    try:
        confidence = ConfidenceThresholds(
            high_total=float(thresholds["high_total"]),
            medium_total=float(thresholds["medium_total"]),
            high_min_fields=int(thresholds.get("high_min_fields", min(DEFAULT_HIGH_MIN_FIELDS, scored))),
            medium_min_fields=int(thresholds.get("medium_min_fields", min(DEFAULT_MEDIUM_MIN_FIELDS, scored))),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise RuleConfigError(f"bad thresholds: {e}", path) from e
    for name in ("high_min_fields", "medium_min_fields"):
        needed = getattr(confidence, name)
        if needed > scored:
            raise RuleConfigError(
                f"{name} is {needed} but only {scored} scored sub-fields are declared", path
            )

    tolerance = data.get("line_tolerance")
    return SourceRules(
        entity_id=str(entity_id),
        name=str(data.get("name", entity_id)),
        description=str(data.get("description", "")),
        fields=fields,
        total_field=total_field,
        thresholds=confidence,
        sections=tuple(parse_section(s, path) for s in data.get("sections") or []),
        document=data.get("document"),
        line_tolerance=float(tolerance) if tolerance is not None else None,
        fallback_to_document=bool(data.get("fallback_to_document", True)),
    )


def load_rules(path: str | Path) -> SourceRules:
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise RuleConfigError(f"cannot read rule file: {e}", str(path)) from e
    return parse_source(data, str(path))


def load_rules_dir(directory: str | Path) -> list[SourceRules]:
    """Load every ``*.yaml`` rule file in *directory*, sorted by file name."""
    directory = Path(directory)
    sources = [load_rules(p) for p in sorted(directory.glob("*.yaml"))]
    seen: set[str] = set()
    for source in sources:
        if source.entity_id in seen:
            raise RuleConfigError(f"entity {source.entity_id!r} declared twice", str(directory))
        seen.add(source.entity_id)
    logger.debug("loaded %d rule files from %s", len(sources), directory)
    return sources


# ---------------------------------------------------------------------------
# Reference dataset
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReferenceEntry:
    """Verified figures for one entity, used when live extraction fails."""

    entity_id: str
    name: str
    description: str
    values: dict[str, float] = field(default_factory=dict)
    as_of: date | None = None

    def to_result(self, at: datetime | None = None) -> ExtractionResult:
        return ExtractionResult(
            entity_id=self.entity_id,
            fields={
                label: ExtractedField(
                    label=label,
                    raw_text="reference",
                    numeric_value=value,
                    source_line=-1,
                )
                for label, value in self.values.items()
            },
            confidence=Confidence.HIGH,
            extracted_at=at or datetime.now(timezone.utc),
            source_description=self.description,
            used_fallback=True,
        )


def _as_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def load_reference(path: str | Path) -> dict[str, ReferenceEntry]:
    """Load the reference dataset keyed by entity id. A missing file is empty."""
    path = Path(path)
    if not path.exists():
        logger.warning("reference dataset %s not found, fallback disabled", path)
        return {}

    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise RuleConfigError(f"cannot read reference dataset: {e}", str(path)) from e

    entries: dict[str, ReferenceEntry] = {}
    for raw in data.get("entries") or []:
        entity_id = raw.get("entity_id")
        if not entity_id:
            raise RuleConfigError("reference entry without entity_id", str(path))
        try:
            values = {str(k): float(v) for k, v in (raw.get("values") or {}).items()}
            as_of = _as_date(raw.get("as_of"))
        except (TypeError, ValueError) as e:
            raise RuleConfigError(f"reference entry {entity_id!r}: {e}", str(path)) from e
        entries[str(entity_id)] = ReferenceEntry(
            entity_id=str(entity_id),
            name=str(raw.get("name", entity_id)),
            description=str(raw.get("description", "")),
            values=values,
            as_of=as_of,
        )
    return entries
