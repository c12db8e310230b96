from __future__ import annotations

import io
import re
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Iterable, Sequence

import pdfplumber

from pdf_models import Line, NumericCandidate, Token

DEFAULT_LINE_TOLERANCE = 3.0

_WHITESPACE_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Token sources
# ---------------------------------------------------------------------------

def chars_to_tokens(chars: list[dict], page_number: int, page_height: float) -> list[Token]:
    """Split page.chars into word tokens on spaces and wide x gaps.

    Many PDFs position columns by coordinate rather than inserting space
    characters, so gap-based splitting is needed to keep columns apart.
    """
    by_top: dict[int, list[dict]] = defaultdict(list)
    for c in chars:
        by_top[round(c["top"])].append(c)

    tokens: list[Token] = []
    for top_key in sorted(by_top.keys()):
        row = sorted(by_top[top_key], key=lambda c: c["x0"])
        current: list[dict] = []

        def flush() -> None:
            if not current:
                return
            x0 = current[0]["x0"]
            x1 = current[-1]["x1"]
            bottom = max(c["bottom"] for c in current)
            top = min(c["top"] for c in current)
            tokens.append(
                Token(
                    text="".join(c["text"] for c in current),
                    x=float(x0),
                    y=float(page_height - bottom),
                    page=page_number,
                    width=float(x1 - x0),
                    height=float(bottom - top),
                )
            )
            current.clear()

        for c in row:
            ch = c["text"]
            if current:
                x0 = current[0]["x0"]
                x1 = current[-1]["x1"]
                avg_char_width = (x1 - x0) / len(current)
                gap = c["x0"] - x1
                if ch == " " or gap > max(avg_char_width * 1.5, 4.0):
                    flush()
            if ch == " ":
                continue
            current.append(c)
        flush()

    return tokens


def tokens_from_pdf(source: str | Path | bytes | IO[bytes]) -> list[Token]:
    """Read every page's text layer into tokens, pages in document order."""
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)

    tokens: list[Token] = []
    with pdfplumber.open(source) as pdf:
        for page in pdf.pages:
            tokens.extend(chars_to_tokens(page.chars, page.page_number, float(page.height)))
    return tokens


def tokens_from_rows(
    rows: Iterable[Sequence[str]],
    page: int = 1,
    row_height: float = 12.0,
    cell_width: float = 100.0,
) -> list[Token]:
    """Flatten table rows (e.g. scraped HTML cells) into tokens with synthesized coordinates."""
    tokens: list[Token] = []
    for i, row in enumerate(rows):
        for j, cell in enumerate(row):
            tokens.append(
                Token(
                    text=str(cell),
                    x=j * cell_width,
                    y=-i * row_height,
                    page=page,
                    width=cell_width,
                    height=row_height,
                )
            )
    return tokens


# ---------------------------------------------------------------------------
# Line reconstruction
# ---------------------------------------------------------------------------

@dataclass
class _Cluster:
    y: float
    lo: float
    hi: float
    tokens: list[Token] = field(default_factory=list)

    def accepts(self, y: float, tolerance: float) -> bool:
        if abs(y - self.y) > tolerance:
            return False
        return max(self.hi, y) - min(self.lo, y) <= tolerance

    def add(self, token: Token) -> None:
        self.tokens.append(token)
        self.lo = min(self.lo, token.y)
        self.hi = max(self.hi, token.y)


def reconstruct_lines(tokens: Iterable[Token], tolerance: float = DEFAULT_LINE_TOLERANCE) -> list[Line]:
    """Cluster tokens into lines, top of page first, pages in ascending order.

    Each token joins the first cluster (in creation order) that still spans at
    most *tolerance* with it; first-match, not best-match.
    """
    by_page: dict[int, list[Token]] = defaultdict(list)
    for token in tokens:
        if token.text and token.text.strip():
            by_page[token.page].append(token)

    lines: list[Line] = []
    for page in sorted(by_page.keys()):
        clusters: list[_Cluster] = []
        for token in by_page[page]:
            for cluster in clusters:
                if cluster.accepts(token.y, tolerance):
                    cluster.add(token)
                    break
            else:
                clusters.append(_Cluster(y=token.y, lo=token.y, hi=token.y, tokens=[token]))

        clusters.sort(key=lambda c: c.y, reverse=True)
        for cluster in clusters:
            ordered = tuple(sorted(cluster.tokens, key=lambda t: t.x))
            text = _WHITESPACE_RE.sub(" ", " ".join(t.text for t in ordered)).strip()
            lines.append(Line(page=page, y=cluster.y, tokens=ordered, text=text))

    return lines


# ---------------------------------------------------------------------------
# Numeric candidates
# ---------------------------------------------------------------------------

_PLAIN = r"(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?"
_GROUPED = r"\d{1,3}(?:,\d{3})+(?:\.\d+)?"

NUMERIC_PATTERNS: dict[str, re.Pattern] = {
    "amount": re.compile(rf"\(\s*{_PLAIN}\s*\)|-?{_PLAIN}"),
    "grouped": re.compile(rf"\(\s*{_GROUPED}\s*\)|-?{_GROUPED}"),
    "percent": re.compile(r"\(\s*\d+(?:\.\d+)?\s*%\s*\)|-?\d+(?:\.\d+)?\s?%"),
}


def numeric_pattern(name_or_regex: str | None) -> re.Pattern:
    """Resolve a named numeric pattern, or compile a custom regex."""
    if not name_or_regex:
        return NUMERIC_PATTERNS["amount"]
    if name_or_regex in NUMERIC_PATTERNS:
        return NUMERIC_PATTERNS[name_or_regex]
    return re.compile(name_or_regex)


def normalize_number(raw: str) -> float | None:
    """Turn a matched numeric string into a float.

    Thousands separators, whitespace and ``%`` are stripped; parentheses or a
    leading minus negate the value.
    """
    text = _WHITESPACE_RE.sub("", raw)
    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]
    if text.startswith("-"):
        negative = not negative
        text = text[1:]
    text = text.replace(",", "").rstrip("%")
    if not text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    return -value if negative else value


def extract_candidates(
    line: Line,
    pattern: re.Pattern,
    line_index: int,
    start_position: int = 0,
) -> list[NumericCandidate]:
    """Return numbers on *line* left to right, skipping digits glued to words."""
    raw = line.text
    results: list[NumericCandidate] = []
    position = start_position

    for m in pattern.finditer(raw):
        token_raw = m.group()
        if not any(ch.isdigit() for ch in token_raw):
            continue

        before_char = raw[m.start() - 1] if m.start() > 0 else ""
        after_char = raw[m.end()] if m.end() < len(raw) else ""
        if before_char.isalpha() or after_char.isalpha():
            continue
        if token_raw.startswith("-") and before_char.isalnum():
            continue
        if before_char == "/" or after_char == "/":
            continue

        value = normalize_number(token_raw)
        if value is None:
            continue

        results.append(
            NumericCandidate(
                raw_text=token_raw,
                value=value,
                line_index=line_index,
                position=position,
            )
        )
        position += 1

    return results
