"""
Tests for glyph run normalization.
"""

import math

from models.layout_types import GlyphRun
from processors.glyph_normalizer import (
    clean_glyph_text,
    flip_to_top_left,
    normalize_glyph_runs,
    sanitize_text,
)


class TestTextCleaning:
    """Tests for control, zero-width and padding cleanup."""

    def test_padding_around_punctuation_collapsed(self):
        assert sanitize_text('Agreement (   "Agreement"   )') == 'Agreement ("Agreement")'

    def test_control_characters_removed(self):
        assert sanitize_text("a\x00b\x07c") == "abc"
        assert sanitize_text("a\tb") == "a\tb"

    def test_urls_keep_their_spacing(self):
        """Padding cleanup is skipped for URL-bearing text."""
        assert sanitize_text("see  https://example.com  ") == "see  https://example.com  "

    def test_zero_width_and_whitespace(self):
        assert clean_glyph_text("  co\u200boper ate  ") == "cooper ate"
        assert clean_glyph_text(None) == ""
        assert clean_glyph_text("\ufeff") == ""


class TestNormalizeGlyphRuns:
    """Tests for filtering and defaulting raw glyph records."""

    def test_malformed_records_dropped(self, make_record):
        raw = [
            make_record("ok", 10),
            {'text': "no size", 'x': 0, 'y': 0, 'width': 10, 'height': 10},
            make_record("nan", math.nan),
            make_record("negative", 10, width=-1),
            make_record("   ", 10),
            "not a record",
            None,
        ]
        runs = normalize_glyph_runs(raw)
        assert [r.text for r in runs] == ["ok"]

    def test_sorted_by_baseline_then_x(self, make_record):
        raw = [make_record("b", 50, y=100), make_record("c", 10, y=120), make_record("a", 10, y=100)]
        assert [r.text for r in normalize_glyph_runs(raw)] == ["a", "b", "c"]

    def test_stream_order_kept_without_sort(self, make_record):
        raw = [make_record("b", 50), make_record("a", 10)]
        assert [r.text for r in normalize_glyph_runs(raw, sort=False)] == ["b", "a"]

    def test_defaults_filled(self):
        run = normalize_glyph_runs([{'text': "x", 'x': 1, 'y': 2, 'width': 3, 'height': 4, 'fontSize': 5}])[0]
        assert run.fontFamily == "default"
        assert run.color == "#000000"
        assert run.rotation == 0.0
        assert run.baselineY == 6.0

    def test_style_derived_from_font_name(self, make_record):
        run = normalize_glyph_runs([make_record("x", 0, fontName="Arial-BoldItalic")])[0]
        assert (run.fontWeight, run.fontStyle) == ("bold", "italic")

    def test_explicit_style_wins(self, make_record):
        run = normalize_glyph_runs([make_record("x", 0, fontName="Arial-Bold", fontWeight="300")])[0]
        assert run.fontWeight == "300"

    def test_glyph_runs_accepted(self):
        run = GlyphRun(text=" word ", x=0, y=0, width=10, height=10)
        assert normalize_glyph_runs([run])[0].text == "word"


class TestFlipToTopLeft:
    def test_bottom_left_record_flipped(self):
        flipped = flip_to_top_left({'text': "x", 'y': 700.0, 'height': 12.0, 'baselineY': 700.0}, 792.0)
        assert flipped['y'] == 80.0
        assert 'baselineY' not in flipped

    def test_original_untouched(self):
        record = {'y': 10.0, 'height': 2.0}
        flip_to_top_left(record, 100.0)
        assert record['y'] == 10.0
