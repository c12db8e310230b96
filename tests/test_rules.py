from pathlib import Path

import pytest

from pdf_errors import RuleConfigError
from pdf_extract import NUMERIC_PATTERNS
from pdf_models import ColumnSelector, Confidence, FieldScope
from pdf_rules import load_reference, load_rules, load_rules_dir, parse_field, parse_source

ROOT = Path(__file__).resolve().parent.parent


def _source(**overrides):
    data = {
        "entity_id": "NDB",
        "fields": [{"label": "total", "anchors": ["sub total"], "range": [1, 10]}],
        "total_field": "total",
        "thresholds": {"high_total": 100, "medium_total": 10},
    }
    data.update(overrides)
    return data


def test_field_defaults():
    rule = parse_field({"label": "housing", "anchors": ["housing loan"]})
    assert rule.column_selector is ColumnSelector.FIRST
    assert rule.scope is FieldScope.SECTION
    assert rule.lookahead_lines == 2
    assert rule.plausible_range is None
    assert rule.numeric_pattern is NUMERIC_PATTERNS["amount"]
    assert rule.scored


def test_field_with_regex_anchors_and_custom_numeric():
    rule = parse_field(
        {
            "label": "total",
            "anchors_regex": ["total local currency loans.*advances"],
            "exclude": "foreign",
            "numeric": r"\d{1,3}(?:,\d{3}){3,}",
            "column": "nth",
            "column_index": 3,
            "scope": "document",
            "scored": False,
        }
    )
    assert rule.anchor_patterns[0].search("Total Local Currency Loans and Advances 1")
    assert rule.exclude_patterns[0].search("FOREIGN")
    assert rule.numeric_pattern.search("1,705,124,546").group() == "1,705,124,546"
    assert rule.column_selector is ColumnSelector.NTH
    assert rule.column_index == 3
    assert rule.scope is FieldScope.DOCUMENT
    assert not rule.scored


@pytest.mark.parametrize(
    "field, message",
    [
        ({"label": "x"}, "no anchors"),
        ({"anchors": ["a"]}, "without a label"),
        ({"label": "x", "anchors": ["a"], "column": "leftmost"}, "leftmost"),
        ({"label": "x", "anchors": ["a"], "range": [10, 1]}, "exceeds max"),
        ({"label": "x", "anchors": ["a"], "range": [10]}, "range must be"),
        ({"label": "x", "anchors": ["a"], "lookahead": -1}, "lookahead"),
        ({"label": "x", "anchors_regex": ["("]}, "anchors_regex"),
    ],
)
def test_invalid_fields(field, message):
    with pytest.raises(RuleConfigError, match=message):
        parse_field(field)


def test_total_field_must_be_declared():
    with pytest.raises(RuleConfigError, match="total_field"):
        parse_source(_source(total_field="grand_total"))


def test_thresholds_are_required():
    with pytest.raises(RuleConfigError, match="thresholds"):
        parse_source(_source(thresholds=None))


def test_unreachable_thresholds_rejected():
    fields = [
        {"label": "total", "anchors": ["sub total"]},
        {"label": "housing", "anchors": ["housing loan"]},
        {"label": "prev_housing", "anchors": ["housing loan"], "column": "second", "scored": False},
    ]
    thresholds = {"high_total": 100, "medium_total": 10, "high_min_fields": 2, "medium_min_fields": 1}
    with pytest.raises(RuleConfigError, match="high_min_fields is 2 but only 1"):
        parse_source(_source(fields=fields, thresholds=thresholds))


def test_default_thresholds_fit_declared_fields():
    fields = [{"label": "total", "anchors": ["sub total"]}, {"label": "housing", "anchors": ["housing loan"]}]
    rules = parse_source(_source(fields=fields))
    assert rules.thresholds.high_min_fields == 1
    assert rules.thresholds.medium_min_fields == 1

    labels = ["total", "housing", "personal", "lap", "education", "gold"]
    rules = parse_source(_source(fields=[{"label": name, "anchors": [name]} for name in labels]))
    assert rules.thresholds.high_min_fields == 4
    assert rules.thresholds.medium_min_fields == 3


def test_duplicate_labels_rejected():
    fields = [{"label": "total", "anchors": ["a"]}, {"label": "total", "anchors": ["b"]}]
    with pytest.raises(RuleConfigError, match="duplicate"):
        parse_source(_source(fields=fields))


def test_sections_parse_in_order():
    rules = parse_source(
        _source(sections=[{"start": ["product wise"], "max_lines": 50}, {"start_regex": ["^local currency$"], "end": ["foreign"]}])
    )
    assert [s.max_lines for s in rules.sections] == [50, 200]
    assert rules.sections[1].end_patterns[0].search("Foreign currency")


def test_load_rules_from_yaml(tmp_path):
    path = tmp_path / "ndb.yaml"
    path.write_text(
        "entity_id: NDB\n"
        "description: NDB Q3 2025\n"
        "line_tolerance: 2.5\n"
        "fields:\n"
        "  - label: total\n"
        "    anchors: [product wise gross loans]\n"
        "    range: [400000000, 500000000]\n"
        "total_field: total\n"
        "thresholds: {high_total: 50000000, medium_total: 20000000}\n",
        encoding="utf-8",
    )
    rules = load_rules(path)
    assert rules.entity_id == "NDB"
    assert rules.name == "NDB"
    assert rules.line_tolerance == 2.5
    assert rules.fields[0].plausible_range == (400000000.0, 500000000.0)


def test_unreadable_rule_file(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("fields: [unclosed\n", encoding="utf-8")
    with pytest.raises(RuleConfigError, match="broken.yaml"):
        load_rules(path)


def test_bundled_rule_files_load():
    sources = load_rules_dir(ROOT / "rules")
    ids = {s.entity_id for s in sources}
    assert {"BOC", "HNB", "Sampath", "Peoples", "ComBank", "NDB", "DFCC", "NTB", "Cargills"} <= ids
    for source in sources:
        assert source.field_rule(source.total_field) is not None


def test_duplicate_entities_rejected(tmp_path):
    body = "entity_id: X\nfields: [{label: t, anchors: [a]}]\ntotal_field: t\nthresholds: {high_total: 1, medium_total: 1}\n"
    (tmp_path / "a.yaml").write_text(body, encoding="utf-8")
    (tmp_path / "b.yaml").write_text(body, encoding="utf-8")
    with pytest.raises(RuleConfigError, match="declared twice"):
        load_rules_dir(tmp_path)


def test_bundled_reference_dataset():
    entries = load_reference(ROOT / "reference" / "market_share.yaml")
    boc = entries["BOC"]
    assert boc.values["total_loans"] == 1705124546
    result = boc.to_result()
    assert result.used_fallback
    assert result.confidence is Confidence.HIGH
    assert result.fields["housing"].source_line == -1


def test_missing_reference_dataset_is_empty(tmp_path):
    assert load_reference(tmp_path / "none.yaml") == {}
