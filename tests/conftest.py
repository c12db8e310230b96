from __future__ import annotations

from datetime import datetime, timezone

import pytest

from pdf_models import Token
from pdf_rules import parse_source

FIXED_TIME = datetime(2025, 10, 15, 12, 0, tzinfo=timezone.utc)


def page_tokens(rows: list[str], page: int = 1, top: float = 760.0, step: float = 14.0) -> list[Token]:
    """One token per word, rows stacked downwards from *top*, words 40pt apart."""
    tokens: list[Token] = []
    for i, row in enumerate(rows):
        y = top - i * step
        for j, word in enumerate(row.split()):
            tokens.append(Token(text=word, x=50.0 + j * 40.0, y=y, page=page, width=30.0, height=8.0))
    return tokens


@pytest.fixture
def tokens_for():
    return page_tokens


@pytest.fixture
def hnb_rules():
    return parse_source(
        {
            "entity_id": "HNB",
            "name": "Hatton National Bank",
            "description": "HNB Q3 2025 - product-wise gross loans",
            "sections": [{"start_regex": ["product.?wise gross loans"], "end": ["total equity"]}],
            "fields": [
                {
                    "label": "total_loans",
                    "anchors": ["sub total"],
                    "numeric": "grouped",
                    "lookahead": 0,
                    "range": [1100000000, 1300000000],
                },
                {
                    "label": "prev_total_loans",
                    "anchors": ["sub total"],
                    "numeric": "grouped",
                    "lookahead": 0,
                    "range": [900000000, 1300000000],
                    "column": "second",
                    "scored": False,
                },
                {
                    "label": "housing",
                    "anchors": ["housing loan"],
                    "numeric": "grouped",
                    "lookahead": 0,
                    "range": [60000000, 80000000],
                },
                {
                    "label": "personal",
                    "anchors": ["personal loan"],
                    "numeric": "grouped",
                    "lookahead": 0,
                    "range": [40000000, 60000000],
                },
            ],
            "total_field": "total_loans",
            "thresholds": {
                "high_total": 50000000,
                "medium_total": 20000000,
                "high_min_fields": 2,
                "medium_min_fields": 1,
            },
        }
    )


HNB_ROWS = [
    "Hatton National Bank PLC",
    "Interim Financial Statements",
    "Notes 12",
    "Product-wise gross loans and advances Rs. '000",
    "30.09.2025 31.12.2024",
    "Overdrafts 98,441,202 91,002,117",
    "Housing loans 66,125,339 60,201,500",
    "Personal loans 47,812,663 44,120,900",
    "Sub total 1,185,878,005 1,062,300,410",
    "Total equity 212,400,100 198,220,000",
    "Sub total 9,999,999,999 9,000,000,000",
]


@pytest.fixture
def hnb_tokens():
    return page_tokens(HNB_ROWS)
