from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


@dataclass(frozen=True)
class Token:
    """A text fragment from a document's text layer.

    ``y`` is in PDF coordinates: origin at the bottom-left, larger is higher.
    """

    text: str
    x: float
    y: float
    page: int
    width: float = 0.0
    height: float = 0.0

    @property
    def x1(self) -> float:
        return self.x + self.width


@dataclass(frozen=True)
class Line:
    """One logical row of text, reconstructed from tokens with near-equal y."""

    page: int
    y: float
    tokens: tuple[Token, ...]
    text: str


@dataclass(frozen=True)
class Section:
    """A contiguous slice of a document's lines. ``end_index`` is exclusive."""

    start_index: int
    end_index: int
    lines: tuple[Line, ...]

    @classmethod
    def empty(cls) -> Section:
        return cls(start_index=-1, end_index=-1, lines=())

    @property
    def found(self) -> bool:
        return self.start_index >= 0


class ColumnSelector(str, Enum):
    FIRST = "first"
    SECOND = "second"
    NTH = "nth"
    RIGHTMOST = "rightmost"


class FieldScope(str, Enum):
    SECTION = "section"
    DOCUMENT = "document"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class SectionRule:
    """Start/end anchors bounding one region of a report."""

    start_patterns: tuple[re.Pattern, ...]
    end_patterns: tuple[re.Pattern, ...] = ()
    max_lines: int = 200


@dataclass(frozen=True)
class FieldRule:
    """How to find and validate one named numeric field."""

    label: str
    anchor_patterns: tuple[re.Pattern, ...]
    numeric_pattern: re.Pattern
    lookahead_lines: int = 2
    plausible_range: tuple[float, float] | None = None
    column_selector: ColumnSelector = ColumnSelector.FIRST
    column_index: int = 0
    exclude_patterns: tuple[re.Pattern, ...] = ()
    scope: FieldScope = FieldScope.SECTION
    scored: bool = True


@dataclass(frozen=True)
class ConfidenceThresholds:
    high_total: float
    medium_total: float
    high_min_fields: int = 4
    medium_min_fields: int = 3


@dataclass(frozen=True)
class NumericCandidate:
    """A number found near an anchor, before range checks."""

    raw_text: str
    value: float
    line_index: int
    position: int


@dataclass(frozen=True)
class AnchorHit:
    """One anchor occurrence and the candidates in its window."""

    line_index: int
    candidates: tuple[NumericCandidate, ...]


@dataclass(frozen=True)
class UnitScale:
    """Unit the document declares for its figures; never applied to values."""

    factor: float
    evidence: str


@dataclass(frozen=True)
class ExtractedField:
    label: str
    raw_text: str
    numeric_value: float
    source_line: int

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "rawText": self.raw_text,
            "numericValue": self.numeric_value,
            "sourceLine": self.source_line,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ExtractedField:
        return cls(
            label=data["label"],
            raw_text=data["rawText"],
            numeric_value=float(data["numericValue"]),
            source_line=int(data["sourceLine"]),
        )


@dataclass(frozen=True)
class SourceRules:
    """Everything the engine needs to know about one bank report."""

    entity_id: str
    name: str
    description: str
    fields: tuple[FieldRule, ...]
    total_field: str
    thresholds: ConfidenceThresholds
    sections: tuple[SectionRule, ...] = ()
    document: str | None = None
    line_tolerance: float | None = None
    fallback_to_document: bool = True

    def field_rule(self, label: str) -> FieldRule | None:
        for rule in self.fields:
            if rule.label == label:
                return rule
        return None


@dataclass(frozen=True)
class ExtractionResult:
    entity_id: str
    fields: dict[str, ExtractedField | None]
    confidence: Confidence
    extracted_at: datetime
    source_description: str
    used_fallback: bool = False
    unit: UnitScale | None = None

    def value(self, label: str) -> float | None:
        extracted = self.fields.get(label)
        return extracted.numeric_value if extracted is not None else None

    def to_dict(self) -> dict:
        return {
            "entityId": self.entity_id,
            "fields": {
                label: (f.to_dict() if f is not None else None)
                for label, f in self.fields.items()
            },
            "confidence": self.confidence.value,
            "extractedAt": self.extracted_at.isoformat(),
            "sourceDescription": self.source_description,
            "usedFallback": self.used_fallback,
            "unit": (
                {"factor": self.unit.factor, "evidence": self.unit.evidence}
                if self.unit is not None
                else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict) -> ExtractionResult:
        unit = data.get("unit")
        return cls(
            entity_id=data["entityId"],
            fields={
                label: (ExtractedField.from_dict(f) if f is not None else None)
                for label, f in data["fields"].items()
            },
            confidence=Confidence(data["confidence"]),
            extracted_at=datetime.fromisoformat(data["extractedAt"]),
            source_description=data["sourceDescription"],
            used_fallback=bool(data.get("usedFallback", False)),
            unit=UnitScale(factor=unit["factor"], evidence=unit["evidence"]) if unit else None,
        )


@dataclass
class AggregateResult:
    """Outcome of one orchestrator run across all sources."""

    results: list[ExtractionResult] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    used_fallback: bool = False
    extracted_count: int = 0

    @property
    def total_count(self) -> int:
        return len(self.results)

    def to_dict(self) -> dict:
        return {
            "results": [r.to_dict() for r in self.results],
            "errors": dict(self.errors),
            "usedFallback": self.used_fallback,
            "extractedCount": self.extracted_count,
            "totalCount": self.total_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> AggregateResult:
        return cls(
            results=[ExtractionResult.from_dict(r) for r in data.get("results", [])],
            errors=dict(data.get("errors", {})),
            used_fallback=bool(data.get("usedFallback", False)),
            extracted_count=int(data.get("extractedCount", 0)),
        )
