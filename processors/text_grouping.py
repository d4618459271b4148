"""Text Geometry Grouping Engine

Groups normalized glyph runs into lines, lines into obstacle-aware flow
regions, and region lines into paragraphs. Also clusters runs by raw spatial
proximity for callers that need grouping without line structure.

Every derived record carries value copies or indices into the page's
normalized run list, never references back into another record.
"""

import logging
import math
import re
from collections import Counter, defaultdict, deque
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set, Tuple

from models.layout_types import (
    DocumentStatistics,
    GlyphRun,
    Obstacles,
    Paragraph,
    ParagraphKind,
    ParagraphLine,
    Rect,
    SpatialGroup,
    SpatialRelationship,
    TextLine,
    TextRegion,
)
from processors.structure_detectors import classify_heading, is_list_item
from processors.text_merger import TextMerger
from utils.geometry import (
    bounding_rect,
    find_containing_rect,
    horizontal_overlap,
    intersection_area,
    intersects,
    is_horizontally_contained,
    nearest_distance,
    union_rect,
)
from utils.stats import mean, median, mode, percentile

logger = logging.getLogger(__name__)

ROTATION_TOLERANCE = 0.01
VISUAL_HEIGHT_EM = 0.85
SOFT_HYPHEN = '\u00ad'

_PUNCT_ONLY = re.compile(r'^[^\w\s]+$')
_OPENING_PUNCT = re.compile(r'^[‘“\'"`({\[]+$')
_CLOSING_PUNCT = re.compile(r'^[’”\'"`.,;:!?)}\]]+$')
_CONTINUATION_PREFIX = re.compile(r'\b[A-Z][a-z]{0,2}$')
_CONTINUATION_SUFFIX = re.compile(r'^[a-z]{3,}')


@dataclass
class GroupingOptions:
    """Line, region and paragraph grouping"""
    line_y_tolerance: float = 2.5  # Baseline distance to the running cluster mean
    paragraph_gap_ratio: float = 1.5  # Region continues while gap <= lineHeight * ratio
    horizontal_tolerance: float = 5.0
    min_indent_shift: float = 8.0
    indent_shift_em: float = 2.0
    soft_overlap_min_area: float = 2.0
    soft_overlap_height_ratio: float = 0.2  # Soft overlap counts above ratio * medianHeight^2
    paragraph_break_min: float = 4.0
    paragraph_break_height_ratio: float = 0.8
    indent_break_min: float = 10.0
    indent_break_height_ratio: float = 1.2
    indent_break_gap_ratio: float = 0.15
    stable_height_slack: float = 4.0
    stable_height_ratio: float = 1.4
    stable_indent_min: float = 18.0
    stable_indent_em: float = 2.5
    line_height_em: float = 1.25
    punct_attach_min: float = 6.0
    punct_attach_height_ratio: float = 2.6
    punct_attach_margin_min: float = 30.0
    punct_attach_margin_ratio: float = 2.5
    spatial_distance_ratio: float = 2.0  # Proximity threshold = ratio * max(width, height) of the seed
    spatial_paragraph_ratio: float = 1.5

    def validate(self) -> bool:
        if self.line_y_tolerance <= 0:
            logger.error("line_y_tolerance must be positive")
            return False
        if self.paragraph_gap_ratio <= 0 or self.spatial_distance_ratio <= 0:
            logger.error("grouping ratios must be positive")
            return False
        return True


def visual_height(item: GlyphRun) -> float:
    return max(1.0, item.height, item.fontSize * VISUAL_HEIGHT_EM)


def is_punctuation_only(text: str) -> bool:
    return bool(_PUNCT_ONLY.match(text.strip()))


def build_text_line(entries: Sequence[Tuple[int, GlyphRun]]) -> TextLine:
    """TextLine from (page index, run) pairs, ordered left-to-right"""
    ordered = sorted(entries, key=lambda e: (e[1].x, e[0]))
    items = [run for _, run in ordered]
    rect = bounding_rect(items)
    return TextLine(
        items=items,
        itemIndices=[index for index, _ in ordered],
        rect=rect,
        minX=rect.left,
        maxX=rect.right,
        baselineY=mean([run.baselineY for run in items]),
        height=max(visual_height(run) for run in items),
        avgFontSize=mean([run.fontSize for run in items], default=12.0),
        dominantFont=mode((run.fontFamily for run in items), default="default"),
        hasRotation=any(abs(run.rotation) > ROTATION_TOLERANCE for run in items),
    )


class TextGrouper:
    """Groups glyph runs into lines, regions, paragraphs and proximity clusters"""

    def __init__(
        self,
        stats: Optional[DocumentStatistics] = None,
        obstacles: Optional[Obstacles] = None,
        options: Optional[GroupingOptions] = None,
        merger: Optional[TextMerger] = None,
    ):
        self.stats = stats or DocumentStatistics()
        self.obstacles = obstacles or Obstacles()
        self.options = options or GroupingOptions()
        self.merger = merger or TextMerger(stats=self.stats)

    # Lines
    def group_into_lines(self, items: Sequence[GlyphRun]) -> List[TextLine]:
        """
        Cluster runs into lines by baseline.

        Runs are visited in (baselineY, x) order and chained while their
        baseline stays within line_y_tolerance of the running cluster mean.
        Clusters made only of punctuation are attached to a nearby text line
        when one is eligible. Lines come back top-to-bottom.
        """
        if not items:
            return []

        tolerance = self.options.line_y_tolerance
        indexed = sorted(enumerate(items), key=lambda e: (e[1].baselineY, e[1].x, e[0]))

        clusters: List[List[Tuple[int, GlyphRun]]] = []
        current: List[Tuple[int, GlyphRun]] = []
        running_mean = 0.0
        for index, run in indexed:
            if current and abs(run.baselineY - running_mean) <= tolerance:
                current.append((index, run))
                running_mean += (run.baselineY - running_mean) / len(current)
            else:
                if current:
                    clusters.append(current)
                current = [(index, run)]
                running_mean = run.baselineY
        clusters.append(current)

        text_clusters = [c for c in clusters if not all(is_punctuation_only(run.text) for _, run in c)]
        punct_clusters = [c for c in clusters if all(is_punctuation_only(run.text) for _, run in c)]

        if text_clusters and punct_clusters:
            text_clusters, punct_clusters = self._attach_punctuation(text_clusters, punct_clusters)

        lines = [build_text_line(c) for c in text_clusters + punct_clusters]
        lines.sort(key=lambda line: (line.baselineY, line.minX))
        logger.debug(f"Grouped {len(items)} runs into {len(lines)} lines")
        return lines

    def _attach_punctuation(
        self,
        text_clusters: List[List[Tuple[int, GlyphRun]]],
        punct_clusters: List[List[Tuple[int, GlyphRun]]],
    ) -> Tuple[List[List[Tuple[int, GlyphRun]]], List[List[Tuple[int, GlyphRun]]]]:
        opts = self.options
        median_height = self.stats.medianHeight
        y_tolerance = max(opts.punct_attach_min, opts.punct_attach_height_ratio * median_height)
        margin = max(opts.punct_attach_margin_min, opts.punct_attach_margin_ratio * median_height)

        extents = []
        for cluster in text_clusters:
            runs = [run for _, run in cluster]
            extents.append((
                mean([run.baselineY for run in runs]),
                min(run.x for run in runs),
                max(run.right for run in runs),
            ))

        attached: Dict[int, List[Tuple[int, GlyphRun]]] = {}
        leftovers: List[List[Tuple[int, GlyphRun]]] = []
        for cluster in punct_clusters:
            orphaned = []
            for index, run in cluster:
                target = self._nearest_line_for_punctuation(run, extents, y_tolerance, margin)
                if target is None:
                    orphaned.append((index, run))
                else:
                    attached.setdefault(target, []).append((index, run))
            if orphaned:
                leftovers.append(orphaned)

        merged = [cluster + attached.get(i, []) for i, cluster in enumerate(text_clusters)]
        return merged, leftovers

    @staticmethod
    def _nearest_line_for_punctuation(
        run: GlyphRun,
        extents: Sequence[Tuple[float, float, float]],
        y_tolerance: float,
        margin: float,
    ) -> Optional[int]:
        text = run.text.strip()
        best, best_distance = None, math.inf
        for i, (baseline, left, right) in enumerate(extents):
            distance = abs(run.baselineY - baseline)
            if distance > y_tolerance:
                continue
            if _OPENING_PUNCT.match(text):
                eligible = abs(run.right - left) <= margin or left - margin <= run.x <= right
            elif _CLOSING_PUNCT.match(text):
                eligible = abs(run.x - right) <= margin or left <= run.x <= right + margin
            else:
                eligible = left - margin <= run.x <= right + margin
            if eligible and distance < best_distance:
                best, best_distance = i, distance
        return best

    # Regions
    def _obstacle_rects(self) -> List[Rect]:
        return list(self.obstacles.hard) + list(self.obstacles.soft)

    def _obstacle_in_gap(self, upper: TextLine, lower: TextLine) -> bool:
        """True when an obstacle edge crosses the vertical gap between two lines, or they sit in different obstacles"""
        rects = self._obstacle_rects()
        if not rects:
            return False

        if find_containing_rect(upper.rect, rects) != find_containing_rect(lower.rect, rects):
            return True

        gap_y_start, gap_y_end = upper.rect.bottom, lower.rect.top
        gap_x_start, gap_x_end = max(upper.minX, lower.minX), min(upper.maxX, lower.maxX)
        for rect in rects:
            has_horizontal_overlap = rect.right > gap_x_start and rect.left < gap_x_end
            top_edge_in_gap = gap_y_start < rect.top < gap_y_end
            bottom_edge_in_gap = gap_y_start < rect.bottom < gap_y_end
            if has_horizontal_overlap and (top_edge_in_gap or bottom_edge_in_gap):
                return True
        return False

    def _continues_region(self, upper: TextLine, lower: TextLine) -> bool:
        opts = self.options
        line_height = max(upper.height, lower.height)
        gap = lower.rect.top - upper.rect.bottom
        if gap > line_height * opts.paragraph_gap_ratio:
            return False
        if gap < -0.5 * min(upper.height, lower.height):
            return False

        overlapping = horizontal_overlap(upper.minX, upper.maxX, lower.minX, lower.maxX) > 0
        contained = is_horizontally_contained(
            upper.minX, upper.maxX, lower.minX, lower.maxX, opts.horizontal_tolerance
        )
        if not (overlapping or contained):
            return False

        max_shift = max(opts.min_indent_shift, opts.indent_shift_em * self.stats.medianFontSize)
        if abs(lower.minX - upper.minX) >= max_shift:
            return False

        return not self._obstacle_in_gap(upper, lower)

    def group_into_regions(self, lines: Sequence[TextLine]) -> List[TextRegion]:
        """
        Sweep lines top-down into flow regions.

        Each line joins the open region whose last line it continues with the
        smallest gap, otherwise it opens a new region. Regions are annotated
        with obstacle overlap, distance and flow eligibility, and paragraphs
        are built for regions stable enough to reflow.
        """
        ordered = sorted(lines, key=lambda line: (line.rect.top, line.minX))
        open_regions: List[List[TextLine]] = []

        for line in ordered:
            best, best_gap = None, math.inf
            for i, region_lines in enumerate(open_regions):
                last = region_lines[-1]
                if self._continues_region(last, line):
                    gap = line.rect.top - last.rect.bottom
                    if gap < best_gap:
                        best, best_gap = i, gap
            if best is None:
                open_regions.append([line])
            else:
                open_regions[best].append(line)

        regions = [self._build_region(region_lines) for region_lines in open_regions]
        regions.sort(key=lambda r: (r.rect.top, r.rect.left))
        logger.debug(f"Grouped {len(ordered)} lines into {len(regions)} regions")
        return regions

    def _build_region(self, lines: List[TextLine]) -> TextRegion:
        rect = union_rect(line.rect for line in lines)
        median_height = self.stats.medianHeight
        soft_min_area = max(
            self.options.soft_overlap_min_area,
            self.options.soft_overlap_height_ratio * median_height * median_height,
        )

        hard_hit = any(intersects(rect, obstacle) for obstacle in self.obstacles.hard)
        soft_hit = any(intersection_area(rect, obstacle) > soft_min_area for obstacle in self.obstacles.soft)
        has_rotation = any(line.hasRotation for line in lines)

        region = TextRegion(
            lines=lines,
            rect=rect,
            flowAllowed=not has_rotation and not hard_hit,
            overlapsObstacle=hard_hit or soft_hit,
            nearestObstacleDistance=nearest_distance(rect, self.obstacles.soft),
        )
        if self._is_reflowable(region):
            region.paragraphs = self.build_paragraphs(region)
        return region

    # Paragraphs
    def _is_reflowable(self, region: TextRegion) -> bool:
        opts = self.options
        lines = region.lines
        if len(lines) < 2 or region.overlapsObstacle:
            return False
        if any(line.hasRotation for line in lines):
            return False

        heights = [line.height for line in lines]
        median_height = self.stats.medianHeight
        if max(heights) > max(min(heights) + opts.stable_height_slack, opts.stable_height_ratio * median_height):
            return False

        if len(lines) > 2:
            lefts = [line.minX for line in lines]
            spread = percentile(lefts, 0.9) - percentile(lefts, 0.1)
            if spread > max(opts.stable_indent_min, opts.stable_indent_em * self.stats.medianFontSize):
                return False
        return True

    def _starts_new_paragraph(self, prev: TextLine, line: TextLine) -> bool:
        opts = self.options
        median_height = self.stats.medianHeight
        gap = line.rect.top - prev.rect.bottom
        if gap > max(opts.paragraph_break_min, opts.paragraph_break_height_ratio * median_height):
            return True
        indent_delta = abs(line.minX - prev.minX)
        return (
            indent_delta > max(opts.indent_break_min, opts.indent_break_height_ratio * median_height)
            and gap > max(1.0, opts.indent_break_gap_ratio * median_height)
        )

    def _line_height(self, lines: Sequence[TextLine]) -> float:
        heights = [max(line.height, line.avgFontSize * self.options.line_height_em) for line in lines]
        return max(1.0, round(max(heights)))

    def _classify_paragraph(self, paragraph: Paragraph, lines: Sequence[TextLine]) -> Paragraph:
        if paragraph.lines and is_list_item(paragraph.lines[0].text):
            paragraph.kind = ParagraphKind.LIST
            return paragraph
        level = classify_heading(mean([line.avgFontSize for line in lines]), self.stats.medianFontSize)
        if level is not None:
            paragraph.kind = ParagraphKind.HEADING
            paragraph.headingLevel = level
        return paragraph

    def build_paragraphs(self, region: TextRegion) -> List[Paragraph]:
        """
        Split a reflowable region into paragraphs.

        Lines are joined without a space across a soft hyphen (U+00AD) and
        after a short capitalised fragment ('Th' + 'ere').
        """
        paragraphs: List[Paragraph] = []
        members: List[List[TextLine]] = []
        prev: Optional[TextLine] = None

        for index, line in enumerate(region.lines):
            text = self.merger.reconstruct_line(line.items).text
            entry = ParagraphLine(text=text, indent=round(line.minX - region.rect.left, 3), lineIndex=index)

            if prev is None or self._starts_new_paragraph(prev, line):
                gap_before = 0.0 if prev is None else line.rect.top - prev.rect.bottom
                paragraphs.append(Paragraph(top=line.rect.top, gapBefore=gap_before, lineHeight=1.0))
                members.append([])
            else:
                previous_entry = paragraphs[-1].lines[-1]
                join, stripped = self._line_join(previous_entry.text, text)
                if join is not None:
                    previous_entry.text = stripped
                    entry.joinWithPrev = join

            paragraphs[-1].lines.append(entry)
            members[-1].append(line)
            prev = line

        for paragraph, lines in zip(paragraphs, members):
            paragraph.lineHeight = self._line_height(lines)
            self._classify_paragraph(paragraph, lines)
        return paragraphs

    @staticmethod
    def _line_join(prev_text: str, next_text: str) -> Tuple[Optional[str], str]:
        """How a line continues the previous one, and the previous text to keep"""
        if prev_text.endswith(SOFT_HYPHEN) and next_text[:1].islower():
            head = prev_text[:-1]
            if head[-1:].isalpha():
                return "hyphenation", head
        if _CONTINUATION_PREFIX.search(prev_text) and _CONTINUATION_SUFFIX.match(next_text):
            return "continuation", prev_text
        return None, prev_text

    # Spatial proximity
    def group_spatially(self, items: Sequence[GlyphRun]) -> List[SpatialGroup]:
        """
        Transitive proximity clusters of runs.

        A cluster grows from its seed with BFS: any unvisited run whose centre
        lies closer than spatial_distance_ratio * max(width, height) of the
        seed to a member joins it. Run centres are bucketed in a uniform grid
        so each BFS step only inspects the cells within reach.
        """
        if not items:
            return []

        ratio = self.options.spatial_distance_ratio
        centres = [(run.x + run.width / 2, run.center_y) for run in items]
        cell_size = max(1.0, median([ratio * max(run.width, run.height) for run in items]))

        grid: Dict[Tuple[int, int], Set[int]] = defaultdict(set)
        for index, (cx, cy) in enumerate(centres):
            grid[(math.floor(cx / cell_size), math.floor(cy / cell_size))].add(index)

        processed: Set[int] = set()
        groups: List[SpatialGroup] = []

        for seed_index, seed in enumerate(items):
            if seed_index in processed:
                continue
            threshold = ratio * max(seed.width, seed.height)
            component = self._find_connected_component(seed_index, centres, grid, cell_size, processed, threshold)
            members = [items[i] for i in component]
            groups.append(SpatialGroup(
                itemIndices=sorted(component),
                rect=bounding_rect(members),
                relationship=self._spatial_relationship(seed, members),
            ))

        logger.debug(f"Spatial grouping produced {len(groups)} clusters from {len(items)} runs")
        return groups

    @staticmethod
    def _find_connected_component(
        start: int,
        centres: Sequence[Tuple[float, float]],
        grid: Dict[Tuple[int, int], Set[int]],
        cell_size: float,
        processed: Set[int],
        threshold: float,
    ) -> List[int]:
        """Find all runs connected to the start run using BFS over the centre grid."""
        def take(index: int) -> None:
            cx, cy = centres[index]
            grid[(math.floor(cx / cell_size), math.floor(cy / cell_size))].discard(index)
            processed.add(index)

        reach = math.ceil(threshold / cell_size)
        component, queue = [], deque([start])
        take(start)
        while queue:
            current = queue.popleft()
            component.append(current)
            cx, cy = centres[current]
            col, row = math.floor(cx / cell_size), math.floor(cy / cell_size)
            for dc in range(-reach, reach + 1):
                for dr in range(-reach, reach + 1):
                    bucket = grid.get((col + dc, row + dr))
                    if not bucket:
                        continue
                    for candidate in list(bucket):
                        px, py = centres[candidate]
                        if math.hypot(px - cx, py - cy) < threshold:
                            take(candidate)
                            queue.append(candidate)
        return component

    def _spatial_relationship(self, seed: GlyphRun, members: Sequence[GlyphRun]) -> SpatialRelationship:
        if len(members) == 1:
            return SpatialRelationship.LINE
        rows = sorted(Counter(round(run.y) for run in members))
        if len(rows) == 1:
            return SpatialRelationship.LINE
        spacing = mean([b - a for a, b in zip(rows, rows[1:])])
        if spacing < self.options.spatial_paragraph_ratio * seed.height:
            return SpatialRelationship.PARAGRAPH
        return SpatialRelationship.BLOCK
