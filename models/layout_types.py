"""
Pydantic models for the text geometry reconstruction engine.

Glyph runs come in, lines/regions/statistics go out. Every derived record is
page scoped and holds value copies or indices into the page's normalized run
list, never references back into mutable page state.
"""

import math
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BoundaryDecisionType(str, Enum):
    """Outcome of the pairwise boundary decision"""
    JOIN = "join"
    SPACE = "space"
    BREAK_LINE = "break_line"


class SpatialRelationship(str, Enum):
    """How the items of a proximity cluster relate to each other"""
    LINE = "line"
    PARAGRAPH = "paragraph"
    BLOCK = "block"


class StructureType(str, Enum):
    """Document structure kinds reported by the structure detector"""
    HEADER = "header"
    PARAGRAPH = "paragraph"
    LIST = "list"
    TABLE = "table"


class ParagraphKind(str, Enum):
    PARAGRAPH = "paragraph"
    HEADING = "heading"
    LIST = "list"


# Geometry primitives
class Rect(BaseModel):
    """Axis-aligned rectangle, top-left origin, y increasing downward"""
    model_config = ConfigDict(frozen=True)

    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def center(self) -> tuple:
        return (self.left + self.width / 2, self.top + self.height / 2)

    @classmethod
    def from_edges(cls, left: float, top: float, right: float, bottom: float) -> 'Rect':
        return cls(left=left, top=top, width=max(0.0, right - left), height=max(0.0, bottom - top))


class Obstacles(BaseModel):
    """Image/graphic bounding boxes that block text flow on a page.

    Hard obstacles (images, annotations, form fields) make an intersecting
    region non-flowable. Soft obstacles (vector graphics) only count once the
    overlap area is significant.
    """
    soft: List[Rect] = Field(default_factory=list)
    hard: List[Rect] = Field(default_factory=list)


# Glyph-level records
class GlyphRun(BaseModel):
    """One positioned span of extracted text with a single style.

    Immutable: every pipeline stage derives new records instead of editing
    runs in place.
    """
    model_config = ConfigDict(frozen=True)

    text: str
    x: float
    y: float
    width: float = Field(ge=0)
    height: float = Field(ge=0)
    fontSize: float = 12.0
    fontFamily: str = "default"
    fontWeight: str = "normal"
    fontStyle: str = "normal"
    color: str = "#000000"
    rotation: float = 0.0
    baselineY: float = 0.0  # Defaults to y + height when omitted

    @model_validator(mode='before')
    @classmethod
    def _default_baseline(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get('baselineY') is None:
            try:
                data = {**data, 'baselineY': float(data['y']) + float(data['height'])}
            except (KeyError, TypeError, ValueError):
                pass  # Field validation reports the real problem
        return data

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2


class TextRun(BaseModel):
    """Styled run produced by coalescing adjacent glyph runs of one line"""
    text: str
    x: float
    y: float
    width: float
    height: float
    fontSize: float
    fontFamily: str
    fontWeight: str = "normal"
    fontStyle: str = "normal"
    color: str = "#000000"
    rotation: float = 0.0

    @classmethod
    def from_glyph(cls, run: GlyphRun) -> 'TextRun':
        return cls(
            text=run.text,
            x=run.x,
            y=run.y,
            width=run.width,
            height=run.height,
            fontSize=run.fontSize,
            fontFamily=run.fontFamily,
            fontWeight=run.fontWeight,
            fontStyle=run.fontStyle,
            color=run.color,
            rotation=run.rotation,
        )


class LineGeometryModel(BaseModel):
    """Per-line calibration: character width and word-break threshold"""
    model_config = ConfigDict(frozen=True)

    estimatedCharWidth: float
    wordBreakThresholdByChar: float


class BoundaryDecision(BaseModel):
    """Decision for one adjacent glyph-run pair, kept for diagnostics"""
    model_config = ConfigDict(frozen=True)

    type: BoundaryDecisionType
    confidence: float
    gapPx: float
    gapByChar: float
    thresholdByChar: float
    rule: Optional[str] = None  # Name of the rule that settled the decision


class ReconstructedLine(BaseModel):
    text: str
    decisions: List[BoundaryDecision] = Field(default_factory=list)


# Line / region records
class TextLine(BaseModel):
    """One vertical cluster of glyph runs ordered left-to-right"""
    items: List[GlyphRun]
    itemIndices: List[int] = Field(default_factory=list)  # Indices into the page's normalized runs
    mergedRuns: List[TextRun] = Field(default_factory=list)
    rect: Rect
    minX: float
    maxX: float
    baselineY: float
    height: float
    avgFontSize: float
    dominantFont: str = "default"
    hasRotation: bool = False


class ParagraphLine(BaseModel):
    text: str
    indent: float = 0.0
    lineIndex: int  # Index into the owning region's lines
    joinWithPrev: Optional[Literal["hyphenation", "continuation"]] = None


class Paragraph(BaseModel):
    lines: List[ParagraphLine] = Field(default_factory=list)
    top: float
    gapBefore: float = 0.0
    lineHeight: float
    kind: ParagraphKind = ParagraphKind.PARAGRAPH
    headingLevel: Optional[int] = None

    @property
    def text(self) -> str:
        parts: List[str] = []
        for line in self.lines:
            if parts and line.joinWithPrev is None:
                parts.append(" ")
            parts.append(line.text)
        return "".join(parts)


class TextRegion(BaseModel):
    """Spatially coherent run of lines, the unit of text flow"""
    lines: List[TextLine] = Field(default_factory=list)
    paragraphs: List[Paragraph] = Field(default_factory=list)
    rect: Rect
    flowAllowed: bool = False
    overlapsObstacle: bool = False
    nearestObstacleDistance: float = math.inf


# Statistics
class GapStatistics(BaseModel):
    characterGaps: List[float] = Field(default_factory=list)
    wordGaps: List[float] = Field(default_factory=list)
    lineGaps: List[float] = Field(default_factory=list)
    paragraphGaps: List[float] = Field(default_factory=list)
    medianCharGap: float = 0.0
    medianWordGap: float = 0.0
    medianLineGap: float = 0.0
    medianParagraphGap: float = 0.0
    p25WordGap: float = 0.0
    p75WordGap: float = 0.0


class FontStatistics(BaseModel):
    fontSizes: Dict[float, int] = Field(default_factory=dict)
    fontFamilies: Dict[str, int] = Field(default_factory=dict)
    dominantFontSize: float = 12.0
    dominantFontFamily: str = "default"
    fontSizeVariance: float = 0.0


class LayoutStatistics(BaseModel):
    leftMargins: List[float] = Field(default_factory=list)
    rightMargins: List[float] = Field(default_factory=list)
    columnPositions: List[float] = Field(default_factory=list)
    indentLevels: List[float] = Field(default_factory=list)
    medianLeftMargin: float = 0.0
    commonIndents: List[float] = Field(default_factory=list)


class DocumentStatistics(BaseModel):
    """Page-level calibration context, read-only for every later stage"""
    gaps: GapStatistics = Field(default_factory=GapStatistics)
    fonts: FontStatistics = Field(default_factory=FontStatistics)
    layout: LayoutStatistics = Field(default_factory=LayoutStatistics)
    medianHeight: float = 12.0
    medianFontSize: float = 12.0
    estimatedCharWidth: float = 6.6  # Page-level char width, 0.55 em of the fallback size
    pageWidth: float = 0.0
    pageHeight: float = 0.0
    textDensity: float = 0.0
    averageWordsPerLine: float = 0.0


# Detector annotations
class Column(BaseModel):
    x: float
    width: float
    items: List[GlyphRun] = Field(default_factory=list)


class ColumnDetection(BaseModel):
    columns: List[Column]
    columnCount: int


class TableCell(BaseModel):
    text: str
    x: float
    y: float
    width: float
    height: float


class TableRow(BaseModel):
    cells: List[TableCell]


class TableDetection(BaseModel):
    rows: List[TableRow]
    columnCount: int
    alignmentScore: float
    rect: Rect


class SpatialGroup(BaseModel):
    itemIndices: List[int]
    rect: Rect
    relationship: SpatialRelationship


class DocumentStructure(BaseModel):
    type: StructureType
    lineIndices: List[int] = Field(default_factory=list)
    level: Optional[int] = None
    rect: Rect


# Engine input / output
class PageInput(BaseModel):
    """Raw per-page payload handed over by the external page decoder.

    Items stay as loose dicts so malformed records can be filtered by the
    normalizer instead of failing validation of the whole page.
    """
    pageNumber: int = Field(1, ge=1)
    width: float = 0.0
    height: float = 0.0
    items: List[Dict] = Field(default_factory=list)
    obstacles: Obstacles = Field(default_factory=Obstacles)


class PageLayout(BaseModel):
    """Everything the markup-emission stage needs for one page"""
    pageNumber: int
    regions: List[TextRegion] = Field(default_factory=list)
    lines: List[TextLine] = Field(default_factory=list)
    statistics: DocumentStatistics = Field(default_factory=DocumentStatistics)
    columns: Optional[ColumnDetection] = None
    table: Optional[TableDetection] = None
    structures: List[DocumentStructure] = Field(default_factory=list)
    spatialGroups: List[SpatialGroup] = Field(default_factory=list)
    direction: Literal["ltr", "rtl"] = "ltr"
    error: Optional[str] = None


# API models
class ReconstructRequest(BaseModel):
    """Request body for the document reconstruction endpoint"""
    pages: List[PageInput] = Field(..., description="Pages in document order")
    profile: Optional[str] = Field(None, description="Calibration profile name (e.g. 'latin-default', 'cjk-default')")
    maxWorkers: Optional[int] = Field(None, ge=1, le=64, description="Concurrent page workers")


class ReconstructResponse(BaseModel):
    pages: List[PageLayout]


class LineRequest(BaseModel):
    """Request body for single-line reconstruction diagnostics"""
    items: List[Dict] = Field(..., description="Glyph runs of one line")
