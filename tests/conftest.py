"""
Shared fixtures for the reconstruction test suite.

Runs are laid out on a 6px-per-character grid at 12px font size unless a
test says otherwise, which keeps gap-by-char arithmetic easy to follow.
"""

import pytest

from models.layout_types import GlyphRun
from processors.boundary_classifier import BoundaryClassifier
from utils.font_metrics import FontMetricsResolver

CHAR_WIDTH = 6.0


@pytest.fixture
def resolver():
    return FontMetricsResolver()


@pytest.fixture
def classifier(resolver):
    return BoundaryClassifier(resolver=resolver)


@pytest.fixture
def make_run():
    """Factory for GlyphRuns; width defaults to 6px per character."""
    def _make(text, x, y=100.0, width=None, height=12.0, font_size=12.0, **extra):
        if width is None:
            width = CHAR_WIDTH * len(text)
        return GlyphRun(text=text, x=x, y=y, width=width, height=height, fontSize=font_size, **extra)
    return _make


@pytest.fixture
def make_line(make_run):
    """Factory laying words out left-to-right with a fixed pixel gap."""
    def _make(words, x=50.0, y=100.0, gap=6.0, font_size=12.0, **extra):
        runs, cursor = [], x
        for word in words:
            run = make_run(word, cursor, y, font_size=font_size, **extra)
            runs.append(run)
            cursor = run.right + gap
        return runs
    return _make


@pytest.fixture
def make_record():
    """Factory for raw glyph dicts as a page decoder would send them."""
    def _make(text, x, y=100.0, width=None, height=12.0, font_size=12.0, **extra):
        record = {
            'text': text,
            'x': x,
            'y': y,
            'width': CHAR_WIDTH * len(text) if width is None else width,
            'height': height,
            'fontSize': font_size,
            'fontFamily': 'Helvetica',
        }
        record.update(extra)
        return record
    return _make


@pytest.fixture
def paragraph_page(make_record):
    """One region holding two paragraphs of two lines each."""
    def words_at(words, y, x=72.0):
        records, cursor = [], x
        for word in words:
            record = make_record(word, cursor, y)
            records.append(record)
            cursor += record['width'] + 4.0
        return records

    items = (
        words_at(["The", "quick", "brown", "fox"], 100.0)
        + words_at(["jumps", "over", "the", "dog"], 116.0)
        + words_at(["Second", "paragraph", "starts"], 144.0)
        + words_at(["here", "and", "ends"], 160.0)
    )
    return {'pageNumber': 1, 'width': 612.0, 'height': 792.0, 'items': items}
