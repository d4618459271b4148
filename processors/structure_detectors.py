"""
Structural detectors.

Independent, read-only passes over a page's runs or lines that annotate
columns, a table, headings, list items and paragraph chains, plus the
dominant reading direction. Insufficient data yields None or an empty list.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from models.layout_types import (
    Column,
    ColumnDetection,
    DocumentStatistics,
    DocumentStructure,
    GlyphRun,
    StructureType,
    TableCell,
    TableDetection,
    TableRow,
    TextLine,
)
from processors.boundary_classifier import classify_code_point
from utils.geometry import bounding_rect
from utils.stats import mean, mode, variance

logger = logging.getLogger(__name__)

ROW_Y_TOLERANCE = 2.5
RTL_SCRIPTS = ("hebrew", "arabic")

LIST_ITEM_PATTERNS = (
    re.compile(r'^[-•·]\s'),
    re.compile(r'^\d+[.)]\s'),
    re.compile(r'^[a-z][.)]\s', re.IGNORECASE),
    re.compile(r'^[ivx]+[.)]\s', re.IGNORECASE),
)


@dataclass
class DetectorOptions:
    """Column, table, heading and list detection"""
    column_gap_ratio: float = 0.1  # Gap above ratio * pageWidth separates columns
    min_table_rows: int = 2
    min_table_columns: int = 2
    table_alignment_min: float = 0.5
    heading_ratio_h1: float = 2.0
    heading_ratio_h2: float = 1.75
    heading_ratio_h3: float = 1.5
    structure_paragraph_ratio: float = 1.5

    def validate(self) -> bool:
        if not 0 < self.column_gap_ratio < 1:
            logger.error("column_gap_ratio must be within (0, 1)")
            return False
        if not self.heading_ratio_h1 >= self.heading_ratio_h2 >= self.heading_ratio_h3 > 1:
            logger.error("heading ratios must be descending and above 1")
            return False
        if self.min_table_rows < 2 or self.min_table_columns < 2:
            logger.error("tables need at least 2 rows and 2 columns")
            return False
        return True


DEFAULT_DETECTOR_OPTIONS = DetectorOptions()


# Columns
def _column_gutters(items: Sequence[GlyphRun], min_gap: float) -> List[Tuple[float, float]]:
    """Empty horizontal bands wider than min_gap that no run crosses, on rounded edges"""
    edges = sorted({round(i.x) for i in items} | {round(i.right) for i in items})
    gutters = []
    for start, end in zip(edges, edges[1:]):
        if end - start <= min_gap:
            continue
        if any(round(i.x) < end and round(i.right) > start for i in items):
            continue
        gutters.append((start, end))
    return gutters


def detect_columns(
    items: Sequence[GlyphRun],
    page_width: Optional[float] = None,
    options: DetectorOptions = DEFAULT_DETECTOR_OPTIONS,
) -> Optional[ColumnDetection]:
    """
    Split the page into column bands at wide vertical gutters.

    Bands run [0, gutter ends..., pageWidth]; each run belongs to the band
    holding its rounded left x. Returns None unless at least two bands hold runs.
    """
    if not items:
        return None

    width = page_width or max(i.right for i in items)
    if width <= 0:
        return None

    gutters = _column_gutters(items, options.column_gap_ratio * width)
    if not gutters:
        return None

    bounds = [0.0] + [float(end) for _, end in gutters] + [max(width, max(i.right for i in items))]
    columns: List[Column] = []
    for k, (start, end) in enumerate(zip(bounds, bounds[1:])):
        is_last = k == len(bounds) - 2
        members = [i for i in items if start <= round(i.x) < end or (is_last and round(i.x) >= end)]
        if members:
            columns.append(Column(x=start, width=end - start, items=members))

    if len(columns) < 2:
        return None

    logger.debug(f"Detected {len(columns)} columns")
    return ColumnDetection(columns=columns, columnCount=len(columns))


# Tables
def _table_from_rows(
    rows: Sequence[Tuple[int, Sequence[GlyphRun]]],
    options: DetectorOptions,
) -> Optional[Tuple[TableDetection, List[int]]]:
    candidates = [(index, sorted(runs, key=lambda r: r.x)) for index, runs in rows if len(runs) >= 2]
    if len(candidates) < options.min_table_rows:
        return None

    column_count = mode(len(runs) for _, runs in candidates)
    matching = [(index, runs) for index, runs in candidates if len(runs) == column_count]
    if column_count < options.min_table_columns or len(matching) < options.min_table_rows:
        return None

    score = mean([
        1.0 / (1.0 + variance([runs[c].x for _, runs in matching]))
        for c in range(column_count)
    ])
    if score <= options.table_alignment_min:
        logger.debug(f"Table candidate rejected: alignment score {score:.3f}")
        return None

    table_rows = [
        TableRow(cells=[TableCell(text=r.text, x=r.x, y=r.y, width=r.width, height=r.height) for r in runs])
        for _, runs in matching
    ]
    rect = bounding_rect(r for _, runs in matching for r in runs)
    detection = TableDetection(rows=table_rows, columnCount=column_count, alignmentScore=score, rect=rect)
    return detection, [index for index, _ in matching]


def detect_table(
    lines: Sequence[TextLine],
    options: DetectorOptions = DEFAULT_DETECTOR_OPTIONS,
) -> Optional[TableDetection]:
    """
    Detect one table from grouped lines.

    Rows are the lines whose item count equals the most common count among
    lines with 2+ items. The alignment score averages 1 / (1 + var(x)) over
    the columns; only scores above table_alignment_min are accepted.
    """
    result = _table_from_rows([(i, line.items) for i, line in enumerate(lines)], options)
    return result[0] if result else None


def _rows_by_baseline(items: Sequence[GlyphRun]) -> List[List[GlyphRun]]:
    rows: List[List[GlyphRun]] = []
    for item in sorted(items, key=lambda r: (r.baselineY, r.x)):
        if rows and abs(item.baselineY - rows[-1][0].baselineY) <= ROW_Y_TOLERANCE:
            rows[-1].append(item)
        else:
            rows.append([item])
    return rows


def detect_table_from_items(
    items: Sequence[GlyphRun],
    options: DetectorOptions = DEFAULT_DETECTOR_OPTIONS,
) -> Optional[TableDetection]:
    """Same as detect_table, with rows formed from raw runs by baseline"""
    result = _table_from_rows(list(enumerate(_rows_by_baseline(items))), options)
    return result[0] if result else None


# Headings and lists
def classify_heading(
    font_size: float,
    reference_size: float,
    options: DetectorOptions = DEFAULT_DETECTOR_OPTIONS,
) -> Optional[int]:
    """Heading level 1-3 from the ratio to the reference size, None for body text"""
    if reference_size <= 0:
        return None
    ratio = font_size / reference_size
    if ratio >= options.heading_ratio_h1:
        return 1
    if ratio >= options.heading_ratio_h2:
        return 2
    if ratio >= options.heading_ratio_h3:
        return 3
    return None


def is_list_item(text: str) -> bool:
    stripped = text.lstrip()
    return any(pattern.match(stripped) for pattern in LIST_ITEM_PATTERNS)


def line_text(line: TextLine) -> str:
    return " ".join(item.text for item in line.items)


def detect_structures(
    lines: Sequence[TextLine],
    stats: Optional[DocumentStatistics] = None,
    options: DetectorOptions = DEFAULT_DETECTOR_OPTIONS,
) -> List[DocumentStructure]:
    """
    Annotate headers, list items, paragraph chains and a table.

    Lines that are neither header nor list item are chained into paragraphs
    while consecutive baselines stay within structure_paragraph_ratio line
    heights of each other.
    """
    stats = stats or DocumentStatistics()
    structures: List[DocumentStructure] = []
    body: List[int] = []

    for index, line in enumerate(lines):
        level = classify_heading(line.avgFontSize, stats.medianFontSize, options)
        if level is not None:
            structures.append(DocumentStructure(
                type=StructureType.HEADER, lineIndices=[index], level=level, rect=line.rect,
            ))
        elif is_list_item(line_text(line)):
            structures.append(DocumentStructure(type=StructureType.LIST, lineIndices=[index], rect=line.rect))
        else:
            body.append(index)

    chain: List[int] = []
    for index in body:
        if chain:
            prev = lines[chain[-1]]
            spacing = lines[index].baselineY - prev.baselineY
            limit = options.structure_paragraph_ratio * max(prev.height, lines[index].height)
            if chain[-1] != index - 1 or not 0 <= spacing <= limit:
                structures.append(_paragraph_structure(lines, chain))
                chain = []
        chain.append(index)
    if chain:
        structures.append(_paragraph_structure(lines, chain))

    table = _table_from_rows([(i, line.items) for i, line in enumerate(lines)], options)
    if table is not None:
        detection, indices = table
        structures.append(DocumentStructure(type=StructureType.TABLE, lineIndices=indices, rect=detection.rect))

    structures.sort(key=lambda s: (s.rect.top, s.rect.left))
    return structures


def _paragraph_structure(lines: Sequence[TextLine], indices: List[int]) -> DocumentStructure:
    rect = bounding_rect(item for i in indices for item in lines[i].items)
    return DocumentStructure(type=StructureType.PARAGRAPH, lineIndices=list(indices), rect=rect)


# Direction
def detect_text_direction(items: Sequence[GlyphRun]) -> str:
    """
    'rtl' or 'ltr' for runs in content-stream order.

    Any Hebrew or Arabic code point makes the page rtl; otherwise the mean x
    movement between consecutive runs on the same baseline decides.
    """
    for item in items:
        if any(classify_code_point(ord(ch)) in RTL_SCRIPTS for ch in item.text):
            return "rtl"

    moves = [
        nxt.x - prev.x
        for prev, nxt in zip(items, items[1:])
        if abs(nxt.baselineY - prev.baselineY) <= ROW_Y_TOLERANCE
    ]
    return "rtl" if moves and mean(moves) < 0 else "ltr"
