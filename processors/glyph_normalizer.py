"""
Glyph run normalization.

Turns loosely-typed glyph records from a page decoder into immutable
GlyphRun models: malformed records are dropped, text is cleaned of control
and zero-width characters, and missing style fields get defaults.
"""

import logging
import math
import re
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from models.layout_types import GlyphRun
from utils.font_metrics import get_font_weight_and_style

logger = logging.getLogger(__name__)

ZERO_WIDTH_CHARS = ('\u200b', '\u200c', '\u200d', '\ufeff')
ALLOWED_CONTROL_CHARS = ('\t', '\n', '\r')
REQUIRED_NUMERIC_FIELDS = ('x', 'y', 'width', 'height', 'fontSize')
DEFAULT_COLOR = "#000000"
DEFAULT_FONT_FAMILY = "default"

URL_PATTERN = re.compile(r'(https?://|www\.)', re.IGNORECASE)
_EDGE_PADDING = re.compile(r'^[ \t]{2,}|[ \t]{2,}$')
_SPACE_AFTER_OPENING = re.compile(r'([(\[{‘“"\'])\s{2,}')
_SPACE_BEFORE_CLOSING = re.compile(r'\s{2,}([)\]}’”"\'])')
_SPACE_BEFORE_PUNCT = re.compile(r'\s{2,}([,.;:!?])')
_WHITESPACE = re.compile(r'\s+')


def _is_control(ch: str) -> bool:
    code = ord(ch)
    return code <= 31 or 127 <= code <= 159


def sanitize_text(text: str) -> str:
    """
    Clean raw extracted text.

    Drops control characters other than tab/newline/CR, then (outside URLs)
    trims 2+ blank padding at either end and collapses 2+ blanks around
    punctuation: 'Agreement (   "Agreement"   )' -> 'Agreement ("Agreement")'.
    """
    if not text:
        return text

    out = ''.join(ch for ch in text if ch in ALLOWED_CONTROL_CHARS or not _is_control(ch))

    if not URL_PATTERN.search(out):
        if _EDGE_PADDING.search(out):
            trimmed = out.strip(' \t')
            if trimmed:
                out = trimmed
        out = _SPACE_AFTER_OPENING.sub(r'\1', out)
        out = _SPACE_BEFORE_CLOSING.sub(r'\1', out)
        out = _SPACE_BEFORE_PUNCT.sub(r'\1', out)

    return out


def clean_glyph_text(text: Optional[str]) -> str:
    """Sanitize, strip zero-width characters and collapse whitespace to single spaces"""
    out = sanitize_text(text or '')
    for ch in ZERO_WIDTH_CHARS:
        out = out.replace(ch, '')
    return _WHITESPACE.sub(' ', out).strip()


def _as_finite(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    return value if math.isfinite(value) else None


def flip_to_top_left(item: Dict[str, Any], page_height: float) -> Dict[str, Any]:
    """
    Convert a bottom-left-origin glyph record to the top-left convention.

    Decoders that report y as the distance from the page bottom to the glyph
    box bottom are mapped with top = page_height - (y + height). Any
    baselineY is dropped so the normalizer re-derives it.
    """
    flipped = dict(item)
    y = _as_finite(item.get('y'))
    height = _as_finite(item.get('height'))
    if y is not None and height is not None:
        flipped['y'] = page_height - (y + height)
    flipped.pop('baselineY', None)
    return flipped


def _normalize_record(record: Dict[str, Any]) -> Optional[GlyphRun]:
    numbers = {key: _as_finite(record.get(key)) for key in REQUIRED_NUMERIC_FIELDS}
    missing = [key for key, value in numbers.items() if value is None]
    if missing:
        logger.debug(f"Dropping glyph run with missing/non-finite {missing}: {record.get('text')!r}")
        return None
    if numbers['width'] < 0 or numbers['height'] < 0:
        logger.debug(f"Dropping glyph run with negative size: {record.get('text')!r}")
        return None

    text = clean_glyph_text(record.get('text'))
    if not text:
        return None

    font_family = record.get('fontFamily') or DEFAULT_FONT_FAMILY
    font_name = record.get('fontName') or font_family
    derived_weight, derived_style = get_font_weight_and_style(font_name)

    rotation = _as_finite(record.get('rotation')) or 0.0
    baseline_y = _as_finite(record.get('baselineY'))
    if baseline_y is None:
        baseline_y = numbers['y'] + numbers['height']

    try:
        return GlyphRun(
            text=text,
            x=numbers['x'],
            y=numbers['y'],
            width=numbers['width'],
            height=numbers['height'],
            fontSize=numbers['fontSize'],
            fontFamily=font_family,
            fontWeight=str(record.get('fontWeight') or derived_weight),
            fontStyle=str(record.get('fontStyle') or derived_style),
            color=record.get('color') or DEFAULT_COLOR,
            rotation=rotation,
            baselineY=baseline_y,
        )
    except ValidationError as e:
        logger.debug(f"Dropping glyph run that failed validation: {e.error_count()} errors")
        return None


def normalize_glyph_runs(
    raw_items: Iterable[Union[GlyphRun, Dict[str, Any]]],
    sort: bool = True,
) -> List[GlyphRun]:
    """
    Normalize raw glyph records into GlyphRuns sorted by (baselineY, x).

    Accepts dicts or GlyphRun instances. Records that are malformed or whose
    text is empty after cleaning are filtered out silently. With sort=False
    the content-stream order is kept.
    """
    runs: List[GlyphRun] = []
    dropped = 0

    for item in raw_items or []:
        record = item.model_dump() if isinstance(item, GlyphRun) else item
        if not isinstance(record, dict):
            dropped += 1
            continue
        run = _normalize_record(record)
        if run is None:
            dropped += 1
            continue
        runs.append(run)

    if dropped:
        logger.debug(f"Normalizer filtered {dropped} glyph records, kept {len(runs)}")

    if sort:
        runs.sort(key=lambda r: (r.baselineY, r.x))
    return runs
