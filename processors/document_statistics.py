"""
Page-level statistics pass.

Computes gap, font and margin distributions over a whole page. The result is
the read-only calibration context for every later stage, so it must be
complete before any per-line decision is made. Empty pages produce neutral
statistics instead of errors.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import List, Optional, Sequence

from models.layout_types import (
    DocumentStatistics,
    FontStatistics,
    GapStatistics,
    GlyphRun,
    LayoutStatistics,
    PageInput,
    TextLine,
)
from processors.glyph_normalizer import normalize_glyph_runs
from processors.line_model import LineModelOptions, estimate_char_width
from utils.font_metrics import FontMetricsResolver
from utils.stats import find_clusters, median, mode, percentile, variance

logger = logging.getLogger(__name__)


@dataclass
class StatisticsOptions:
    """Page-level statistics pass"""
    char_gap_max_em: float = 0.8  # Normalized gap below this counts as a character gap
    kerning_gap_max_em: float = 0.15  # Below this a gap is never a word gap
    word_gap_min_em: float = 0.25  # Inside the character band, above this also counts as a word gap
    paragraph_gap_line_ratio: float = 1.5  # Line gap above lineHeight * ratio is a paragraph gap
    font_size_precision: int = 1  # Decimal places for the font-size histogram
    column_cluster_tolerance: float = 5.0
    indent_cluster_tolerance: float = 3.0
    min_cluster_members: int = 2
    fallback_font_size: float = 12.0
    fallback_height: float = 12.0
    fallback_font_family: str = "default"

    def validate(self) -> bool:
        if not 0 <= self.kerning_gap_max_em <= self.char_gap_max_em:
            logger.error("kerning_gap_max_em must be within [0, char_gap_max_em]")
            return False
        if self.fallback_font_size <= 0 or self.fallback_height <= 0:
            logger.error("fallback sizes must be positive")
            return False
        if self.min_cluster_members < 1:
            logger.error("min_cluster_members must be at least 1")
            return False
        return True



class DocumentStatisticsAnalyzer:
    """Computes DocumentStatistics for one page"""

    def __init__(
        self,
        resolver: Optional[FontMetricsResolver] = None,
        options: Optional[StatisticsOptions] = None,
        line_model_options: Optional[LineModelOptions] = None,
    ):
        self.resolver = resolver or FontMetricsResolver()
        self.options = options or StatisticsOptions()
        self.line_model_options = line_model_options or LineModelOptions()

    def analyze(
        self,
        page: PageInput,
        lines: Sequence[TextLine],
        items: Optional[Sequence[GlyphRun]] = None,
    ) -> DocumentStatistics:
        """
        Analyze one page.

        Args:
            page: Page payload (dimensions, raw items)
            lines: Bootstrap line grouping of the page
            items: Already normalized runs; normalized from `page.items` if omitted
        """
        opts = self.options
        if items is None:
            items = normalize_glyph_runs(page.items)

        heights = [max(1.0, i.height) for i in items]
        font_sizes = [max(1.0, i.fontSize) for i in items]
        median_height = median(heights) or opts.fallback_height
        median_font_size = median(font_sizes) or opts.fallback_font_size

        total_chars = sum(len(i.text) for i in items)
        total_words = sum(len(i.text.split()) for i in items)
        page_area = max(1.0, page.width * page.height)

        stats = DocumentStatistics(
            gaps=self._analyze_gaps(lines),
            fonts=self._analyze_fonts(items),
            layout=self._analyze_layout(lines, page.width),
            medianHeight=median_height,
            medianFontSize=median_font_size,
            estimatedCharWidth=estimate_char_width(items, self.resolver, self.line_model_options, median_font_size),
            pageWidth=page.width,
            pageHeight=page.height,
            textDensity=total_chars / page_area,
            averageWordsPerLine=total_words / len(lines) if lines else 0.0,
        )

        logger.debug(
            f"Page {page.pageNumber} statistics: {len(items)} runs, {len(lines)} lines, "
            f"medianFontSize={stats.medianFontSize:.1f}, medianWordGap={stats.gaps.medianWordGap:.2f}"
        )
        return stats

    def _analyze_gaps(self, lines: Sequence[TextLine]) -> GapStatistics:
        """
        Classify horizontal gaps as character or word gaps, vertical ones as
        line or paragraph gaps.

        The character band [kerning, char_gap_max) overlaps the word band
        above word_gap_min: a gap in that overlap is recorded in both lists.
        """
        opts = self.options
        character_gaps: List[float] = []
        word_gaps: List[float] = []
        line_gaps: List[float] = []
        paragraph_gaps: List[float] = []

        for line in lines:
            ordered = sorted(line.items, key=lambda r: r.x)
            for current, nxt in zip(ordered, ordered[1:]):
                gap = nxt.x - current.right
                if gap < 0:
                    continue
                avg_font_size = (current.fontSize + nxt.fontSize) / 2
                normalized = gap / max(1.0, avg_font_size)
                if normalized < opts.kerning_gap_max_em:
                    character_gaps.append(gap)
                elif normalized < opts.char_gap_max_em:
                    character_gaps.append(gap)
                    if normalized > opts.word_gap_min_em:
                        word_gaps.append(gap)
                else:
                    word_gaps.append(gap)

        by_top = sorted(lines, key=lambda l: l.rect.top)
        for current, nxt in zip(by_top, by_top[1:]):
            gap = nxt.rect.top - current.rect.bottom
            if gap >= 0:
                line_gaps.append(gap)
                if gap > current.height * opts.paragraph_gap_line_ratio:
                    paragraph_gaps.append(gap)

        return GapStatistics(
            characterGaps=character_gaps,
            wordGaps=word_gaps,
            lineGaps=line_gaps,
            paragraphGaps=paragraph_gaps,
            medianCharGap=median(character_gaps),
            medianWordGap=median(word_gaps),
            medianLineGap=median(line_gaps),
            medianParagraphGap=median(paragraph_gaps),
            p25WordGap=percentile(word_gaps, 0.25),
            p75WordGap=percentile(word_gaps, 0.75),
        )

    def _analyze_fonts(self, items: Sequence[GlyphRun]) -> FontStatistics:
        opts = self.options
        sizes = Counter(round(i.fontSize, opts.font_size_precision) for i in items)
        families = Counter(i.fontFamily or opts.fallback_font_family for i in items)

        return FontStatistics(
            fontSizes=dict(sizes),
            fontFamilies=dict(families),
            dominantFontSize=mode(sizes.elements(), opts.fallback_font_size),
            dominantFontFamily=mode(families.elements(), opts.fallback_font_family),
            fontSizeVariance=variance([i.fontSize for i in items]),
        )

    def _analyze_layout(self, lines: Sequence[TextLine], page_width: float) -> LayoutStatistics:
        opts = self.options
        left_margins = [line.minX for line in lines]
        right_margins = [page_width - line.maxX for line in lines]
        x_positions = [round(item.x) for line in lines for item in line.items]

        column_positions = find_clusters(x_positions, opts.column_cluster_tolerance, opts.min_cluster_members)
        base_margin = median(left_margins)
        indent_levels = find_clusters(
            [m for m in left_margins if m > base_margin],
            opts.indent_cluster_tolerance,
            opts.min_cluster_members,
        )

        return LayoutStatistics(
            leftMargins=left_margins,
            rightMargins=right_margins,
            columnPositions=column_positions,
            indentLevels=indent_levels,
            medianLeftMargin=base_margin,
            commonIndents=list(indent_levels),
        )
