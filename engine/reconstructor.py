"""
Page Reconstruction Coordinator

Runs the full per-page pipeline: normalize glyph runs, bootstrap lines,
compute page statistics, regroup with the calibrated statistics, merge
styled runs, build flow regions and paragraphs, then run the structural
detectors. One call handles one page synchronously; nothing is shared
between calls except read-only configuration.

Usage:
    >>> from engine.reconstructor import PageReconstructor
    >>> layout = PageReconstructor().reconstruct({'width': 612, 'height': 792, 'items': runs})
    >>> print([line.mergedRuns[0].text for line in layout.lines])
"""

import logging
import time
from typing import Any, Dict, Optional, Sequence, Union

from engine.config import ReconstructionConfig
from models.layout_types import PageInput, PageLayout, ReconstructedLine
from processors.boundary_classifier import BoundaryClassifier
from processors.document_statistics import DocumentStatisticsAnalyzer
from processors.glyph_normalizer import normalize_glyph_runs
from processors.structure_detectors import (
    detect_columns,
    detect_structures,
    detect_table,
    detect_text_direction,
)
from processors.text_grouping import TextGrouper
from processors.text_merger import TextMerger
from utils.font_metrics import FontMetricsResolver
from utils.validation import ConfigValidationError, ensure_valid_page

logger = logging.getLogger(__name__)


class PageReconstructor:
    """
    Reconstructs words, lines, regions and structure for single pages.

    Example:
        >>> reconstructor = PageReconstructor(ReconstructionConfig.default().with_profile("latin-tight"))
        >>> layout = reconstructor.reconstruct(page)
    """

    def __init__(
        self,
        config: Optional[ReconstructionConfig] = None,
        resolver: Optional[FontMetricsResolver] = None,
    ):
        """
        Args:
            config: Reconstruction configuration (uses defaults if None)
            resolver: Font metrics resolver shared by every stage

        Raises:
            ConfigValidationError: If the configuration is invalid
        """
        self.config = config or ReconstructionConfig.default()
        if not self.config.validate():
            raise ConfigValidationError(f"Invalid reconstruction configuration: {self.config!r}")

        self.resolver = resolver or FontMetricsResolver()
        self.classifier = BoundaryClassifier(
            resolver=self.resolver,
            profile=self.config.calibration,
            options=self.config.boundary,
            line_model_options=self.config.line_model,
        )
        self.analyzer = DocumentStatisticsAnalyzer(
            resolver=self.resolver,
            options=self.config.statistics,
            line_model_options=self.config.line_model,
        )

    def reconstruct(self, page: Union[PageInput, Dict[str, Any]]) -> PageLayout:
        """
        Reconstruct one page.

        Raises:
            ReconstructionInputError: If the page payload itself is unusable
        """
        if not isinstance(page, PageInput):
            page = PageInput.model_validate(page)
        ensure_valid_page({
            'pageNumber': page.pageNumber,
            'width': page.width,
            'height': page.height,
            'items': page.items,
        })

        started = time.perf_counter()
        opts = self.config

        stream = normalize_glyph_runs(page.items, sort=False)
        items = sorted(stream, key=lambda r: (r.baselineY, r.x))

        bootstrap_merger = TextMerger(self.classifier, line_model_options=opts.line_model)
        bootstrap = TextGrouper(options=opts.grouping, merger=bootstrap_merger).group_into_lines(items)
        stats = self.analyzer.analyze(page, bootstrap, items)
        stats_done = time.perf_counter()

        merger = TextMerger(self.classifier, stats, opts.line_model)
        grouper = TextGrouper(stats, page.obstacles, opts.grouping, merger)
        lines = [
            line.model_copy(update={'mergedRuns': merger.merge_text_runs(line.items)})
            for line in grouper.group_into_lines(items)
        ]
        regions = grouper.group_into_regions(lines)
        grouping_done = time.perf_counter()

        layout = PageLayout(
            pageNumber=page.pageNumber,
            regions=regions,
            lines=lines,
            statistics=stats,
            columns=detect_columns(items, page.width or None, opts.detectors),
            table=detect_table(lines, opts.detectors),
            structures=detect_structures(lines, stats, opts.detectors),
            spatialGroups=grouper.group_spatially(items),
            direction=detect_text_direction(stream),
        )

        finished = time.perf_counter()
        logger.debug(
            f"Page {page.pageNumber}: {len(items)} runs -> {len(lines)} lines, {len(regions)} regions "
            f"(stats {stats_done - started:.3f}s, grouping {grouping_done - stats_done:.3f}s, "
            f"detectors {finished - grouping_done:.3f}s)"
        )
        return layout

    def reconstruct_line_text(
        self,
        items: Sequence[Dict[str, Any]],
        profile: Optional[str] = None,
    ) -> ReconstructedLine:
        """Line text and boundary decisions for one line of raw glyph records"""
        runs = normalize_glyph_runs(items)
        classifier = self.classifier
        if profile:
            classifier = BoundaryClassifier(
                resolver=self.resolver,
                profile=self.config.with_profile(profile).calibration,
                options=self.config.boundary,
                line_model_options=self.config.line_model,
            )
        return TextMerger(classifier, line_model_options=self.config.line_model).reconstruct_line(runs)
