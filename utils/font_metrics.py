"""
Font metrics resolution for glyph-width estimation.

Maps raw font names (subset-prefixed, PostScript-suffixed, weight-tagged)
to a small built-in table of metrics records and predicts per-character
advance widths from them. The resolver is a plain object: the host
application constructs one and hands it to the statistics and line-model
stages, there is no module-level instance.
"""

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Literal, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

UNITS_PER_EM = 1000


@dataclass(frozen=True)
class FontMetricsRecord:
    """Advance-width metrics for one font family, in 1/1000 em units"""
    id: str
    family: str
    aliases: Tuple[str, ...] = ()
    average_char_width: float = 500.0
    space_width: float = 250.0
    char_width_overrides: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class ResolvedFontMatch:
    record: FontMetricsRecord
    score: float
    reason: Literal["alias", "fallback"]


BUILT_IN_FONT_METRICS: Tuple[FontMetricsRecord, ...] = (
    FontMetricsRecord(
        id="default_sans",
        family="Sans",
        aliases=("sans-serif", "sansserif", "default"),
        average_char_width=500.0,
        space_width=278.0,
        char_width_overrides={"n": 556.0, "i": 222.0, "l": 222.0, "m": 833.0},
    ),
    FontMetricsRecord(
        id="default_serif",
        family="Serif",
        aliases=("serif",),
        average_char_width=460.0,
        space_width=250.0,
        char_width_overrides={"n": 500.0, "i": 278.0, "l": 278.0, "m": 778.0},
    ),
    FontMetricsRecord(
        id="default_mono",
        family="Monospace",
        aliases=("monospace", "mono"),
        average_char_width=600.0,
        space_width=600.0,
        char_width_overrides={"n": 600.0},
    ),
    FontMetricsRecord(
        id="helvetica",
        family="Helvetica",
        aliases=("arial", "arialmt", "liberation sans", "nimbus sans", "dejavu sans", "open sans", "calibri"),
        average_char_width=513.0,
        space_width=278.0,
        char_width_overrides={"n": 556.0, "i": 222.0, "l": 222.0, "m": 833.0},
    ),
    FontMetricsRecord(
        id="times",
        family="Times",
        aliases=("times new roman", "times roman", "liberation serif", "nimbus roman", "dejavu serif", "georgia"),
        average_char_width=450.0,
        space_width=250.0,
        char_width_overrides={"n": 500.0, "i": 278.0, "l": 278.0, "m": 778.0},
    ),
    FontMetricsRecord(
        id="courier",
        family="Courier",
        aliases=("courier new", "liberation mono", "nimbus mono", "dejavu sans mono"),
        average_char_width=600.0,
        space_width=600.0,
        char_width_overrides={"n": 600.0},
    ),
)

_STYLE_WEIGHT_TOKENS = re.compile(
    r'\b(bold|black|heavy|semibold|demibold|medium|light|thin|extralight|ultralight|extrabold|ultrabold'
    r'|italic|oblique|regular|reg|normal|bd|it|bi|condensed|narrow|expanded)\b'
)
_PS_TOKENS = re.compile(r'\b(psmt|ps|mt|std|otf|ttf)\b')


@lru_cache(maxsize=256)
def normalize_font_family(font_name: str) -> str:
    """
    Reduce a raw font name to a lowercase family key.

    'ABCDEF+TimesNewRomanPS-BoldItalicMT' -> 'times new roman'
    """
    if not font_name:
        return ""

    name = font_name.split(',')[0].strip().strip('\'"')
    name = re.sub(r'^[A-Z]{6}\+', '', name)
    name = re.sub(r'_\d+wght', '', name, flags=re.IGNORECASE)
    name = re.sub(r'_opsz\d+', '', name, flags=re.IGNORECASE)

    # Split camel case and PostScript suffixes into tokens
    name = re.sub(r'([a-z])([A-Z])', r'\1 \2', name)
    name = re.sub(r'([A-Za-z])(PSMT|MT|PS)\b', r'\1 \2', name)
    name = re.sub(r'[_/\-]+', ' ', name).lower()

    name = _PS_TOKENS.sub('', name)
    name = _STYLE_WEIGHT_TOKENS.sub('', name)
    return re.sub(r'\s+', ' ', name).strip()


@lru_cache(maxsize=128)
def get_font_weight_and_style(font_name: str) -> Tuple[str, str]:
    """
    Extract font weight and style from font name
    """
    font_weight = "normal"
    font_style = "normal"

    if not font_name:
        return font_weight, font_style

    font_name_lower = font_name.lower()

    weight_match = re.search(r'(\d{3})(?:wght)?', font_name_lower)
    if weight_match:
        weight_val = int(weight_match.group(1))
        if 100 <= weight_val <= 900 and weight_val % 100 == 0:
            font_weight = str(weight_val)

    if font_weight == "normal":
        if 'semibold' in font_name_lower or 'demibold' in font_name_lower:
            font_weight = "600"
        elif any(bold_indicator in font_name_lower for bold_indicator in ['bold', 'black', 'heavy']):
            font_weight = "bold"
        elif any(light_indicator in font_name_lower for light_indicator in ['light', 'thin', 'hairline']):
            font_weight = "300"
        elif 'medium' in font_name_lower:
            font_weight = "500"

    if any(italic_indicator in font_name_lower for italic_indicator in ['italic', 'oblique', 'slant']):
        font_style = "italic"

    return font_weight, font_style


class FontMetricsResolver:
    """Resolves font names to metrics records and predicts glyph widths"""

    def __init__(self, records: Optional[Sequence[FontMetricsRecord]] = None):
        self.records: List[FontMetricsRecord] = list(records or BUILT_IN_FONT_METRICS)
        if not self.records:
            raise ValueError("FontMetricsResolver needs at least one metrics record")
        self._alias_index: Dict[str, FontMetricsRecord] = {}
        self._rebuild_index()

    def _rebuild_index(self) -> None:
        self._alias_index.clear()
        for record in self.records:
            for alias in (record.family, *record.aliases):
                key = normalize_font_family(alias)
                if key:
                    self._alias_index.setdefault(key, record)
        logger.debug(f"Font metrics index built: {len(self.records)} records, {len(self._alias_index)} keys")

    def resolve_by_name(self, name: str) -> ResolvedFontMatch:
        key = normalize_font_family(name)
        if key and key in self._alias_index:
            return ResolvedFontMatch(record=self._alias_index[key], score=1.0, reason="alias")
        return ResolvedFontMatch(record=self._pick_fallback(key), score=0.5, reason="fallback")

    def estimate_char_width_units(self, ch: str, record: FontMetricsRecord) -> float:
        override = record.char_width_overrides.get(ch)
        if override is not None and override > 0:
            return override

        avg = record.average_char_width
        if ch == ' ':
            return record.space_width
        if ch.isdigit():
            return max(1.0, avg * 0.95)
        if 'A' <= ch <= 'Z':
            return max(1.0, avg * 1.05)
        if 'a' <= ch <= 'z':
            return max(1.0, avg * 0.98)
        if ch in ',.;:!?':
            return max(1.0, avg * 0.55)
        return avg

    def estimate_char_width_px(self, ch: str, record: FontMetricsRecord, font_size: float) -> float:
        units = self.estimate_char_width_units(ch, record)
        return units / UNITS_PER_EM * max(1.0, font_size)

    def _pick_fallback(self, key: str) -> FontMetricsRecord:
        if 'mono' in key or 'courier' in key:
            return self._get_by_id('default_mono')
        if 'serif' in key.replace('sans serif', '') or 'times' in key or 'roman' in key:
            return self._get_by_id('default_serif')
        return self._get_by_id('default_sans')

    def _get_by_id(self, record_id: str) -> FontMetricsRecord:
        for record in self.records:
            if record.id == record_id:
                return record
        return self.records[0]
