from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Mapping

from pdf_models import (
    Confidence,
    ConfidenceThresholds,
    ExtractedField,
    ExtractionResult,
    SourceRules,
    UnitScale,
)

logger = logging.getLogger(__name__)


def count_populated(rules: SourceRules, fields: Mapping[str, ExtractedField | None]) -> int:
    """Count scored sub-fields (everything but the total) with a non-zero value."""
    count = 0
    for rule in rules.fields:
        if rule.label == rules.total_field or not rule.scored:
            continue
        extracted = fields.get(rule.label)
        if extracted is not None and extracted.numeric_value != 0:
            count += 1
    return count


def score_confidence(total: float, populated: int, thresholds: ConfidenceThresholds) -> Confidence:
    if total >= thresholds.high_total and populated >= thresholds.high_min_fields:
        return Confidence.HIGH
    if total >= thresholds.medium_total and populated >= thresholds.medium_min_fields:
        return Confidence.MEDIUM
    return Confidence.LOW


def build_result(
    rules: SourceRules,
    fields: Mapping[str, ExtractedField | None],
    unit: UnitScale | None = None,
    extracted_at: datetime | None = None,
) -> ExtractionResult | None:
    """Package *fields* into an ExtractionResult.

    Returns None when the total field is absent: a partial result without a
    total is never surfaced.
    """
    total = fields.get(rules.total_field)
    if total is None:
        logger.info("%s: total field %r not found, discarding result", rules.entity_id, rules.total_field)
        return None

    populated = count_populated(rules, fields)
    confidence = score_confidence(total.numeric_value, populated, rules.thresholds)
    logger.debug(
        "%s: total=%s populated=%d confidence=%s",
        rules.entity_id,
        total.numeric_value,
        populated,
        confidence.value,
    )

    return ExtractionResult(
        entity_id=rules.entity_id,
        fields={rule.label: fields.get(rule.label) for rule in rules.fields},
        confidence=confidence,
        extracted_at=extracted_at or datetime.now(timezone.utc),
        source_description=rules.description,
        used_fallback=False,
        unit=unit,
    )
