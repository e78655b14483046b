"""Recover measurement rows from positioned PDF text.

The parser works on pages of :class:`TextFragment` objects (text plus the
x/y of its baseline origin in PDF user space, where larger ``y`` is higher on
the page). Fragments are grouped into visual rows and each page is read as
one of two inspection-report layouts:

* the column layout emitted by ZEISS CALYPSO (header with 測定値/設計値),
  read token by token;
* a free-text layout where a name is followed by four 4-decimal numbers,
  matched with regular expressions against the joined row.

If nothing is recovered the built-in reference dataset is returned with a
warning so the operator can keep working.
"""
from __future__ import annotations

import functools
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from .models import Measurement

logger = logging.getLogger(__name__)

SORT_TIE_BAND = 2.0
ROW_EPSILON = 3.0

FALLBACK_WARNING = "PDFの自動解析に失敗したため、手動データを使用します。"
SOURCE_ERROR_WARNING = "PDF解析中にエラーが発生しました"

HEADER_WORDS = frozenset({"名前", "測定値", "設計値", "公差(+)", "公差(-)", "誤差", "+/-"})
COLUMN_NUMBER_RE = re.compile(r"^-?\d+\.\d{3,4}$")
UNIT_SUFFIX_RE = re.compile(r"\s*mm\s*$")
_NUM4 = r"(-?\d+\.\d{4})"
ROW_PATTERNS = (
    re.compile(r"^(.+?)\s+" + r"\s+".join([_NUM4] * 4) + r"\s*"),
    re.compile(r"^([A-Za-z_\-]+[\d_]*(?:_[A-Za-z0-9]+)*)\s+" + r"\s+".join([_NUM4] * 4) + r"\s*"),
)
REJECTED_NAME_PARTS = ("設計値", "公差")

FALLBACK_MEASUREMENTS: Tuple[Measurement, ...] = (
    Measurement("平面度1", "0.0392"),
    Measurement("X-値円1_6H7", "12.5385"),
    Measurement("Y-値円1_6H7", "190.0109"),
    Measurement("直径円1_6H7", "6.0188"),
    Measurement("真円度円1_6H7", "0.0015"),
    Measurement("同心度3", "0.0706"),
    Measurement("直径円16", "15.9222"),
)


@dataclass(frozen=True)
class TextFragment:
    text: str
    x: float
    y: float


@dataclass
class ParseResult:
    measurements: List[Measurement] = field(default_factory=list)
    warning: Optional[str] = None
    used_fallback: bool = False
    formats: List[str] = field(default_factory=list)  # detected layout per page

    def asdict(self) -> dict:
        return {
            "measurements": [m.asdict() for m in self.measurements],
            "warning": self.warning,
            "usedFallback": self.used_fallback,
            "formats": list(self.formats),
        }


# ---- Row grouping ------------------------------------------------------------

def _compare(a: TextFragment, b: TextFragment) -> int:
    dy = b.y - a.y
    if abs(dy) > SORT_TIE_BAND:
        return 1 if dy > 0 else -1
    dx = a.x - b.x
    return (dx > 0) - (dx < 0)


def group_rows(fragments: Iterable[TextFragment], epsilon: float = ROW_EPSILON) -> List[List[TextFragment]]:
    """Group fragments into visual rows, top of the page first.

    Fragments are ordered by descending y (ties within two units broken by
    ascending x). A new row starts whenever the rounded y moves by at least
    ``epsilon`` from the previous fragment.
    """
    ordered = sorted(fragments, key=functools.cmp_to_key(_compare))
    rows: List[List[TextFragment]] = []
    current: List[TextFragment] = []
    last_y: Optional[int] = None
    for fragment in ordered:
        y = int(round(fragment.y))
        if last_y is None or abs(y - last_y) < epsilon:
            current.append(fragment)
        else:
            if current:
                rows.append(current)
            current = [fragment]
        last_y = y
    if current:
        rows.append(current)
    return rows


def row_tokens(row: Sequence[TextFragment]) -> List[str]:
    return [token for token in (fragment.text.strip() for fragment in row) if token]


# ---- Format detection & row readers ------------------------------------------------

def detect_format(rows: Sequence[Sequence[TextFragment]]) -> str:
    for row in rows:
        text = " ".join(fragment.text for fragment in row).strip()
        if "ZEISS CALYPSO" in text or ("測定値" in text and "設計値" in text):
            return "columns"
    return "free"


def is_out_of_tolerance(measured: Optional[str], design: Optional[str], upper: Optional[str], lower: Optional[str]) -> bool:
    if not (measured and design and upper and lower):
        return False
    try:
        error = float(measured) - float(design)
        return error > float(upper) or error < float(lower)
    except ValueError:
        return False


def read_column_row(tokens: Sequence[str]) -> Optional[Measurement]:
    if len(tokens) < 2:
        return None
    numbers: List[Optional[str]] = []
    measured_index = -1
    for index, token in enumerate(tokens):
        candidate = UNIT_SUFFIX_RE.sub("", token)
        if COLUMN_NUMBER_RE.match(candidate) and len(numbers) < 4:
            if not numbers:
                measured_index = index
            numbers.append(candidate)
    if measured_index <= 0:
        return None
    name = "".join(part for part in tokens[:measured_index] if part and part not in HEADER_WORDS)
    if not name:
        return None
    numbers += [None] * (4 - len(numbers))
    measured, design, upper, lower = numbers
    return Measurement(name, measured, "mm", is_out_of_tolerance(measured, design, upper, lower))


def read_free_row(text: str, seen: Set[Tuple[str, str]]) -> Optional[Measurement]:
    for pattern in ROW_PATTERNS:
        match = pattern.match(text)
        if not match:
            continue
        name = re.sub(r"\s+", "", match.group(1).strip())
        measured, design, upper, lower = match.group(2, 3, 4, 5)
        if (name, measured) in seen or any(part in name for part in REJECTED_NAME_PARTS):
            continue
        return Measurement(name, measured, "mm", is_out_of_tolerance(measured, design, upper, lower))
    return None


# ---- Entry points -----------------------------------------------------------------

def parse_pages(pages: Sequence[Sequence[TextFragment]], epsilon: float = ROW_EPSILON) -> ParseResult:
    """Parse every page and merge the rows in page order."""
    result = ParseResult()
    seen: Set[Tuple[str, str]] = set()
    for page_number, fragments in enumerate(pages, start=1):
        rows = group_rows(fragments, epsilon)
        layout = detect_format(rows)
        result.formats.append(layout)
        logger.debug("page %d: %d rows, %s layout", page_number, len(rows), layout)
        for row in rows:
            tokens = row_tokens(row)
            if layout == "columns":
                measurement = read_column_row(tokens)
            else:
                measurement = read_free_row(" ".join(tokens), seen)
            if measurement is None or (measurement.name, measurement.value) in seen:
                continue
            seen.add((measurement.name, measurement.value))
            result.measurements.append(measurement)
            logger.debug(
                "accepted %s = %s mm%s",
                measurement.name,
                measurement.value,
                " [out of tolerance]" if measurement.out_of_tolerance else "",
            )
    if not result.measurements:
        return fallback_result(FALLBACK_WARNING, formats=result.formats)
    logger.info("Extracted %d measurements from %d page(s)", len(result.measurements), len(pages))
    return result


def fallback_result(warning: str = FALLBACK_WARNING, formats: Optional[List[str]] = None) -> ParseResult:
    logger.warning("%s (%d reference rows)", warning, len(FALLBACK_MEASUREMENTS))
    return ParseResult(
        measurements=list(FALLBACK_MEASUREMENTS),
        warning=warning,
        used_fallback=True,
        formats=list(formats or []),
    )


def fragments_from_dicts(pages: Iterable[Iterable[dict]]) -> List[List[TextFragment]]:
    return [
        [TextFragment(str(item["text"]), float(item["x"]), float(item["y"])) for item in page]
        for page in pages
    ]
