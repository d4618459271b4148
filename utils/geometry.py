"""
Rectangle helpers shared by the grouper and the detectors.

All coordinates use the top-left page convention (y grows downward).
"""

import math
from typing import Iterable, Optional, Sequence

from models.layout_types import GlyphRun, Rect


def bounding_rect(items: Iterable[GlyphRun]) -> Rect:
    """Bounding box of a set of glyph runs (zero rect when empty)"""
    items = list(items)
    if not items:
        return Rect(left=0, top=0, width=0, height=0)
    return Rect.from_edges(
        min(i.x for i in items),
        min(i.y for i in items),
        max(i.right for i in items),
        max(i.y + i.height for i in items),
    )


def union_rect(rects: Iterable[Rect]) -> Rect:
    rects = list(rects)
    if not rects:
        return Rect(left=0, top=0, width=0, height=0)
    return Rect.from_edges(
        min(r.left for r in rects),
        min(r.top for r in rects),
        max(r.right for r in rects),
        max(r.bottom for r in rects),
    )


def intersects(a: Rect, b: Rect) -> bool:
    return a.left < b.right and a.right > b.left and a.top < b.bottom and a.bottom > b.top


def intersection_area(a: Rect, b: Rect) -> float:
    w = min(a.right, b.right) - max(a.left, b.left)
    h = min(a.bottom, b.bottom) - max(a.top, b.top)
    if w <= 0 or h <= 0:
        return 0.0
    return w * h


def rect_distance(a: Rect, b: Rect) -> float:
    """Euclidean gap between two rectangles, 0 when they touch or overlap"""
    dx = max(0.0, max(a.left, b.left) - min(a.right, b.right))
    dy = max(0.0, max(a.top, b.top) - min(a.bottom, b.bottom))
    return math.hypot(dx, dy)


def nearest_distance(rect: Rect, obstacles: Sequence[Rect]) -> float:
    if not obstacles:
        return math.inf
    return min(rect_distance(rect, o) for o in obstacles)


def find_containing_rect(rect: Rect, candidates: Sequence[Rect]) -> Optional[Rect]:
    """First candidate that strictly contains the centre of `rect`"""
    cx, cy = rect.center
    for candidate in candidates:
        if candidate.left < cx < candidate.right and candidate.top < cy < candidate.bottom:
            return candidate
    return None


def horizontal_overlap(a_left: float, a_right: float, b_left: float, b_right: float) -> float:
    return max(0.0, min(a_right, b_right) - max(a_left, b_left))


def is_horizontally_contained(a_left: float, a_right: float, b_left: float, b_right: float,
                              tolerance: float = 5.0) -> bool:
    """True when one span lies inside the other within `tolerance`"""
    a_in_b = a_left >= b_left - tolerance and a_right <= b_right + tolerance
    b_in_a = b_left >= a_left - tolerance and b_right <= a_right + tolerance
    return a_in_b or b_in_a
