"""
Tests for line text reconstruction and styled-run merging.
"""

from models.layout_types import BoundaryDecisionType, DocumentStatistics, GapStatistics, LineGeometryModel
from processors.text_merger import TextMerger

FIXED_MODEL = LineGeometryModel(estimatedCharWidth=6.0, wordBreakThresholdByChar=0.5)
LOW_THRESHOLD_MODEL = LineGeometryModel(estimatedCharWidth=6.0, wordBreakThresholdByChar=0.1)


class TestReconstructLine:
    """Tests for TextMerger.reconstruct_line"""

    def test_words_separated(self, make_line):
        merger = TextMerger()
        runs = make_line(["The", "quick", "fox"])
        result = merger.reconstruct_line(list(reversed(runs)))
        assert result.text == "The quick fox"
        assert len(result.decisions) == 2
        assert all(d.type == BoundaryDecisionType.SPACE for d in result.decisions)

    def test_empty_line(self):
        result = TextMerger().reconstruct_line([])
        assert result.text == ""
        assert result.decisions == []

    def test_split_word_rejoined(self, make_run):
        runs = [make_run("fl", 36, width=11), make_run("ight", 47, width=22)]
        assert TextMerger().reconstruct_line(runs).text == "flight"

    def test_numeric_separator_joined(self, make_run):
        """'12' ':' '30' with small gaps reads as one time token."""
        runs = [make_run("12", 0), make_run(":", 13, width=3), make_run("30", 17)]
        result = TextMerger().reconstruct_line(runs, LOW_THRESHOLD_MODEL)
        assert result.text == "12:30"
        assert result.decisions[1].type == BoundaryDecisionType.JOIN
        assert result.decisions[1].rule == "numeric_separator"

    def test_opening_punctuation_attaches(self, make_run):
        runs = [make_run("(", 0, width=4), make_run("note", 9)]
        result = TextMerger().reconstruct_line(runs, FIXED_MODEL)
        assert result.text == "(note"
        assert result.decisions[0].rule == "punctuation_attach"

    def test_closing_quote_attaches(self, make_run):
        runs = [make_run("said", 0), make_run("”", 29, width=4)]
        assert TextMerger().reconstruct_line(runs, FIXED_MODEL).text == "said”"

    def test_distant_punctuation_keeps_space(self, make_run):
        runs = [make_run("(", 0, width=4), make_run("note", 16)]
        assert TextMerger().reconstruct_line(runs, FIXED_MODEL).text == "( note"

    def test_break_line_still_spaced(self, make_run):
        runs = [make_run("left", 0), make_run("right", 100)]
        result = TextMerger().reconstruct_line(runs)
        assert result.text == "left right"
        assert result.decisions[0].type == BoundaryDecisionType.BREAK_LINE


class TestMergeTextRuns:
    """Tests for TextMerger.merge_text_runs"""

    def test_same_style_merged(self, make_line):
        runs = make_line(["Hello", "world"], x=0, gap=4)
        merged = TextMerger().merge_text_runs(runs)
        assert len(merged) == 1
        assert merged[0].text == "Hello world"
        assert merged[0].x == 0
        assert merged[0].width == 64

    def test_style_change_splits(self, make_line, make_run):
        runs = make_line(["Hello", "world"], x=0, gap=4) + [make_run("Bold", 68, fontWeight="bold")]
        merged = TextMerger().merge_text_runs(runs)
        assert [r.text for r in merged] == ["Hello world", "Bold"]
        assert merged[1].fontWeight == "bold"

    def test_break_line_splits(self, make_run):
        runs = [make_run("left", 0), make_run("right", 100)]
        merged = TextMerger().merge_text_runs(runs)
        assert [r.text for r in merged] == ["left", "right"]

    def test_gap_limit_from_statistics(self, make_line):
        """A page with wide word gaps tolerates wider gaps inside a run."""
        runs = make_line(["wide", "gaps"], x=0, gap=8)
        narrow = TextMerger().merge_text_runs(runs)
        stats = DocumentStatistics(gaps=GapStatistics(medianWordGap=5.0, p75WordGap=5.0))
        wide = TextMerger(stats=stats).merge_text_runs(runs)
        assert len(narrow) == 2
        assert len(wide) == 1
        assert wide[0].text == "wide gaps"

    def test_vertical_extent_covers_members(self, make_run):
        runs = [make_run("ab", 0, y=100, height=12), make_run("cd", 13, y=98, height=16)]
        merged = TextMerger().merge_text_runs(runs, FIXED_MODEL)
        assert len(merged) == 1
        assert merged[0].y == 98
        assert merged[0].height == 16

    def test_empty(self):
        assert TextMerger().merge_text_runs([]) == []


class TestEndToEndWords:
    def test_boarding_time(self, make_run):
        runs = [make_run("Boarding", 100), make_run("Time", 162)]
        assert TextMerger().reconstruct_line(runs).text == "Boarding Time"
