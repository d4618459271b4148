"""
Per-line geometry calibration.

Estimates a character width for one line of glyph runs and derives the
gap-by-char value above which an inter-run gap reads as a word space. The
threshold is calibrated per line from that line's own gap distribution.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from models.layout_types import GlyphRun, LineGeometryModel
from utils.font_metrics import FontMetricsResolver
from utils.stats import clamp, kmeans_1d, median, percentile

logger = logging.getLogger(__name__)

DEFAULT_FONT_SIZE = 12.0
MIN_CHAR_WIDTH = 0.01


@dataclass
class LineModelOptions:
    """Per-line character width and word-break threshold estimation"""
    fallback_threshold: float = 0.95  # No gaps on the line
    max_gap_by_char: float = 6.0  # Gaps are clipped to [0, max] before analysis
    char_width_fallback_ratio: float = 0.55  # Char width = ratio * fontSize when nothing else works
    char_width_min_ratio: float = 0.25
    char_width_max_ratio: float = 1.2
    reference_glyph: str = "n"
    single_gap_break_min: float = 0.18  # A lone gap at least this wide is a deliberate break
    word_tokenized_p25: float = 0.32  # p25 above this means the line is already split into words
    word_tokenized_p50: float = 0.42
    min_cluster_separation: float = 0.12
    min_cluster_ratio: float = 1.5

    def validate(self) -> bool:
        if not 0 < self.char_width_min_ratio < self.char_width_max_ratio:
            logger.error("char width ratios must satisfy 0 < min < max")
            return False
        if self.fallback_threshold <= 0 or self.max_gap_by_char <= 0:
            logger.error("fallback_threshold and max_gap_by_char must be positive")
            return False
        return True


def visible_length(text: str) -> int:
    return len(''.join(text.split()))


def _clamp_width(value: float, avg_font_size: float, options: LineModelOptions) -> float:
    return clamp(value, avg_font_size * options.char_width_min_ratio, avg_font_size * options.char_width_max_ratio)


def estimate_char_width(
    items: Sequence[GlyphRun],
    resolver: FontMetricsResolver,
    options: Optional[LineModelOptions] = None,
    fallback_font_size: float = DEFAULT_FONT_SIZE,
) -> float:
    """
    Median of measured and predicted character widths for a set of runs.

    Measured: width / visible chars per run, clamped to
    [0.25, 1.2] x average font size. Predicted: width of the reference glyph
    for each distinct (fontFamily, rounded fontSize) style.
    """
    options = options or LineModelOptions()
    if not items:
        return max(1.0, fallback_font_size) * options.char_width_fallback_ratio

    avg_font_size = sum(max(1.0, i.fontSize) for i in items) / len(items)
    widths: List[float] = []
    predicted_by_style = {}

    for item in items:
        length = visible_length(item.text)
        if length >= 1 and item.width > 0:
            widths.append(_clamp_width(item.width / length, avg_font_size, options))

        size = max(1.0, item.fontSize or avg_font_size)
        style_key = (item.fontFamily, round(size))
        if style_key not in predicted_by_style:
            match = resolver.resolve_by_name(item.fontFamily)
            px = resolver.estimate_char_width_px(options.reference_glyph, match.record, size)
            if px > 0:
                predicted_by_style[style_key] = px

    widths.extend(predicted_by_style.values())
    if not widths:
        return max(1.0, avg_font_size) * options.char_width_fallback_ratio
    return median(widths)


def estimate_pair_char_width(
    prev: GlyphRun,
    next_run: GlyphRun,
    resolver: FontMetricsResolver,
    options: Optional[LineModelOptions] = None,
) -> float:
    """Char width for a lone pair: measured widths, predicted widths and the 0.55 em fallback"""
    options = options or LineModelOptions()
    avg_font_size = max(1.0, (prev.fontSize + next_run.fontSize) / 2)

    candidates: List[float] = []
    for run in (prev, next_run):
        length = visible_length(run.text)
        if length >= 1:
            candidates.append(run.width / length)
    for run in (prev, next_run):
        match = resolver.resolve_by_name(run.fontFamily)
        candidates.append(resolver.estimate_char_width_px(options.reference_glyph, match.record, avg_font_size))
    candidates.append(avg_font_size * options.char_width_fallback_ratio)

    usable = [_clamp_width(c, avg_font_size, options) for c in candidates if c > 0]
    if not usable:
        return avg_font_size * options.char_width_fallback_ratio
    return sorted(usable)[len(usable) // 2]


def derive_word_break_threshold(gaps_by_char: Sequence[float], options: Optional[LineModelOptions] = None) -> float:
    """
    Word-break threshold (in gap-by-char units) from one line's gap distribution.

    - no gaps: fixed fallback
    - one gap: a moderately wide gap is scaled down into a break threshold,
      a tiny one is treated as kerning and requires a clearly larger gap
    - several gaps: a line whose p25 is already wide is word-tokenized;
      otherwise a 2-means split separates kerning from word spaces, and a
      line without a clear bimodal split stays conservative
    """
    options = options or LineModelOptions()
    gaps = sorted(clamp(g, 0.0, options.max_gap_by_char) for g in gaps_by_char if g >= 0)

    if not gaps:
        return options.fallback_threshold

    if len(gaps) == 1:
        g = gaps[0]
        if g >= options.single_gap_break_min:
            return clamp(g * 0.85, 0.2, 0.95)
        return clamp(g * 1.25, 0.95, 1.6)

    p25 = percentile(gaps, 0.25)
    p50 = percentile(gaps, 0.5)
    p75 = percentile(gaps, 0.75)
    p90 = percentile(gaps, 0.9)

    if p25 >= options.word_tokenized_p25:
        return clamp(p25 * 0.9, 0.28, 0.95)

    small, large = kmeans_1d(gaps)
    separation = large - small
    ratio = large / small if small > 0 else large
    if separation < options.min_cluster_separation or ratio < options.min_cluster_ratio:
        if p50 >= options.word_tokenized_p50:
            return clamp(p50 * 0.9, 0.28, 0.95)
        return clamp(p90 * 1.15, 0.95, 1.6)

    midpoint = (small + large) / 2
    return clamp(max(midpoint, p75 * 0.9), 0.5, 1.35)


def gaps_by_char(items: Sequence[GlyphRun], char_width: float) -> List[float]:
    """Non-negative inter-run gaps of x-ordered runs, in char widths"""
    ordered = sorted(items, key=lambda r: r.x)
    divisor = max(MIN_CHAR_WIDTH, char_width)
    gaps = []
    for prev, nxt in zip(ordered, ordered[1:]):
        gap = nxt.x - prev.right
        if gap >= 0:
            gaps.append(gap / divisor)
    return gaps


def build_line_geometry_model(
    items: Sequence[GlyphRun],
    resolver: Optional[FontMetricsResolver] = None,
    options: Optional[LineModelOptions] = None,
    fallback_font_size: float = DEFAULT_FONT_SIZE,
) -> LineGeometryModel:
    """
    Build the calibration model for one line.

    `fallback_font_size` (usually the page's median font size) sizes the
    char width of an empty line.
    """
    options = options or LineModelOptions()
    resolver = resolver or FontMetricsResolver()

    char_width = estimate_char_width(items, resolver, options, fallback_font_size)
    threshold = derive_word_break_threshold(gaps_by_char(items, char_width), options)

    logger.debug(f"Line model: {len(items)} runs, charWidth={char_width:.2f}, threshold={threshold:.2f}")
    return LineGeometryModel(estimatedCharWidth=char_width, wordBreakThresholdByChar=threshold)
