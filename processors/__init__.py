"""
Text Reconstruction Components

Pipeline stages that turn positioned glyph runs into words, lines, regions
and structure annotations:

- Glyph normalizer: filters and cleans raw glyph records
- DocumentStatisticsAnalyzer: page-level gap, font and margin distributions
- Line model: per-line character width and word-break threshold
- BoundaryClassifier: join / space / line-break rule cascade
- TextMerger: line text and styled run coalescing
- TextGrouper: lines, flow regions, paragraphs and proximity clusters
- Structure detectors: columns, tables, headings, lists, text direction

These differ from utils/ which contains pure, stateless helpers.
"""

from processors.glyph_normalizer import normalize_glyph_runs, clean_glyph_text, flip_to_top_left
from processors.document_statistics import DocumentStatisticsAnalyzer, StatisticsOptions
from processors.line_model import LineModelOptions, build_line_geometry_model
from processors.boundary_classifier import (
    BoundaryClassifier,
    BoundaryRuleOptions,
    CalibrationProfile,
    get_calibration_profile,
    resolve_script,
)
from processors.text_merger import TextMerger
from processors.text_grouping import GroupingOptions, TextGrouper
from processors.structure_detectors import (
    DetectorOptions,
    classify_heading,
    detect_columns,
    detect_structures,
    detect_table,
    detect_table_from_items,
    detect_text_direction,
    is_list_item,
)

__version__ = "2.0.0"
__all__ = [
    'normalize_glyph_runs',
    'clean_glyph_text',
    'flip_to_top_left',
    'DocumentStatisticsAnalyzer',
    'StatisticsOptions',
    'LineModelOptions',
    'build_line_geometry_model',
    'BoundaryClassifier',
    'BoundaryRuleOptions',
    'CalibrationProfile',
    'get_calibration_profile',
    'resolve_script',
    'TextMerger',
    'GroupingOptions',
    'TextGrouper',
    'DetectorOptions',
    'classify_heading',
    'detect_columns',
    'detect_structures',
    'detect_table',
    'detect_table_from_items',
    'detect_text_direction',
    'is_list_item',
]
