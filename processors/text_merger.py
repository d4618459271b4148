"""
Line text reconstruction and styled-run merging.

Turns the x-ordered glyph runs of one line into text, using the boundary
classifier for every adjacent pair plus two line-level corrections the
pairwise rules cannot see: digits around a lone separator glyph ('12' ':'
'30') stay joined, and detached punctuation attaches to its word.
"""

import logging
import re
from typing import List, Optional, Sequence, Tuple

from models.layout_types import (
    BoundaryDecision,
    BoundaryDecisionType,
    DocumentStatistics,
    GlyphRun,
    LineGeometryModel,
    ReconstructedLine,
    TextRun,
)
from processors.boundary_classifier import BoundaryClassifier
from processors.line_model import LineModelOptions, build_line_geometry_model

logger = logging.getLogger(__name__)

NUMERIC_SEPARATORS = frozenset(':.,/-–—')
FALLBACK_WORD_GAP = 3.0
MERGE_GAP_MULTIPLIER = 2.0
FONT_SIZE_TOLERANCE = 0.5
ROTATION_TOLERANCE = 0.01

_CLOSING_ONLY = re.compile(r'^[’”\'"`.,;:!?)}\]]+$')
_OPENING_ONLY = re.compile(r'^[‘“\'"`({\[]+$')


def _is_numeric_separator_triplet(prev: str, sep: str, nxt: str) -> bool:
    return sep in NUMERIC_SEPARATORS and prev[-1:].isdigit() and nxt[:1].isdigit()


class TextMerger:
    """Builds line text and coalesced style runs from one line's glyph runs"""

    def __init__(
        self,
        classifier: Optional[BoundaryClassifier] = None,
        stats: Optional[DocumentStatistics] = None,
        line_model_options: Optional[LineModelOptions] = None,
    ):
        self.classifier = classifier or BoundaryClassifier()
        self.stats = stats or DocumentStatistics()
        self.line_model_options = line_model_options or self.classifier.line_model_options

    def build_model(self, items: Sequence[GlyphRun]) -> LineGeometryModel:
        return build_line_geometry_model(
            items,
            self.classifier.resolver,
            self.line_model_options,
            fallback_font_size=self.stats.medianFontSize,
        )

    def _merge_gap_limit(self) -> float:
        gaps = self.stats.gaps
        word_gap = gaps.p75WordGap or gaps.medianWordGap or FALLBACK_WORD_GAP
        return MERGE_GAP_MULTIPLIER * word_gap

    def _resolve_boundaries(
        self,
        ordered: Sequence[GlyphRun],
        model: LineGeometryModel,
    ) -> Tuple[List[BoundaryDecision], List[bool]]:
        """Per-pair decisions and the final insert-space flags after line-level corrections"""
        script = self.classifier.resolve_script_for(ordered)
        decisions = [
            self.classifier.classify(prev, nxt, model, script)
            for prev, nxt in zip(ordered, ordered[1:])
        ]
        spaces = [d.type != BoundaryDecisionType.JOIN for d in decisions]
        texts = [run.text.strip() for run in ordered]

        for k in range(1, len(ordered) - 1):
            if _is_numeric_separator_triplet(texts[k - 1], texts[k], texts[k + 1]):
                for pair in (k - 1, k):
                    if spaces[pair]:
                        spaces[pair] = False
                        decisions[pair] = decisions[pair].model_copy(
                            update={'type': BoundaryDecisionType.JOIN, 'rule': 'numeric_separator'}
                        )

        attach_max = self.classifier.options.punctuation_attach_max
        for pair, decision in enumerate(decisions):
            if not spaces[pair] or decision.type == BoundaryDecisionType.BREAK_LINE:
                continue
            if decision.gapByChar > attach_max:
                continue
            if _CLOSING_ONLY.match(texts[pair + 1]) or _OPENING_ONLY.match(texts[pair]):
                spaces[pair] = False
                decisions[pair] = decision.model_copy(
                    update={'type': BoundaryDecisionType.JOIN, 'rule': 'punctuation_attach'}
                )

        return decisions, spaces

    def reconstruct_line(self, items: Sequence[GlyphRun], model: Optional[LineGeometryModel] = None) -> ReconstructedLine:
        """
        Reconstruct the text of one line.

        A break_line boundary still contributes a single space to the flat
        line text; callers that need the split use merge_text_runs.
        """
        ordered = sorted(items, key=lambda r: r.x)
        if not ordered:
            return ReconstructedLine(text="")

        model = model or self.build_model(ordered)
        decisions, spaces = self._resolve_boundaries(ordered, model)

        parts = [ordered[0].text]
        for run, space in zip(ordered[1:], spaces):
            if space:
                parts.append(" ")
            parts.append(run.text)

        return ReconstructedLine(text="".join(parts), decisions=decisions)

    def _should_merge(self, current: TextRun, last_item: GlyphRun, item: GlyphRun, max_gap: float) -> bool:
        if current.fontFamily != item.fontFamily:
            return False
        if abs(current.fontSize - item.fontSize) > FONT_SIZE_TOLERANCE:
            return False
        if current.fontWeight != item.fontWeight or current.fontStyle != item.fontStyle:
            return False
        if current.color != item.color:
            return False
        if abs(current.rotation - item.rotation) > ROTATION_TOLERANCE:
            return False
        return item.x - last_item.right < max_gap

    def merge_text_runs(self, items: Sequence[GlyphRun], model: Optional[LineGeometryModel] = None) -> List[TextRun]:
        """Coalesce same-style neighbours of one line into TextRuns"""
        ordered = sorted(items, key=lambda r: r.x)
        if not ordered:
            return []

        model = model or self.build_model(ordered)
        decisions, spaces = self._resolve_boundaries(ordered, model)
        max_gap = self._merge_gap_limit()

        runs: List[TextRun] = []
        current = TextRun.from_glyph(ordered[0])
        last_item = ordered[0]

        for item, decision, space in zip(ordered[1:], decisions, spaces):
            if decision.type != BoundaryDecisionType.BREAK_LINE and self._should_merge(current, last_item, item, max_gap):
                top = min(current.y, item.y)
                bottom = max(current.y + current.height, item.y + item.height)
                right = max(current.x + current.width, item.right)
                current = current.model_copy(update={
                    'text': current.text + (" " if space else "") + item.text,
                    'y': top,
                    'width': right - current.x,
                    'height': bottom - top,
                })
            else:
                runs.append(current)
                current = TextRun.from_glyph(item)
            last_item = item

        runs.append(current)
        logger.debug(f"Merged {len(ordered)} glyph runs into {len(runs)} text runs")
        return runs
