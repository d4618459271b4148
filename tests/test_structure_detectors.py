"""
Tests for column, table, heading, list, structure and direction detection.
"""

import pytest

from models.layout_types import StructureType
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
from processors.text_grouping import build_text_line


@pytest.fixture
def grid(make_run):
    """3x3 grid of cells with left edges at x = 50, 150, 250."""
    def _make(rows=3, xs=(50.0, 150.0, 250.0), row_gap=20.0):
        return [
            [make_run(f"r{r}c{c}", x, y=100.0 + r * row_gap) for c, x in enumerate(xs)]
            for r in range(rows)
        ]
    return _make


def as_lines(rows):
    lines, index = [], 0
    for row in rows:
        lines.append(build_text_line([(index + k, run) for k, run in enumerate(row)]))
        index += len(row)
    return lines


class TestDetectTable:
    def test_aligned_grid(self, grid):
        table = detect_table(as_lines(grid()))
        assert table is not None
        assert table.columnCount == 3
        assert len(table.rows) == 3
        assert table.alignmentScore == pytest.approx(1.0)
        assert table.rows[0].cells[1].text == "r0c1"
        assert table.rect.left == 50

    def test_jitter_within_one_unit(self, make_run):
        rows = [
            [make_run("a", 50, y=100), make_run("b", 150, y=100), make_run("c", 250, y=100)],
            [make_run("d", 51, y=120), make_run("e", 149, y=120), make_run("f", 250.5, y=120)],
            [make_run("g", 49.5, y=140), make_run("h", 150.5, y=140), make_run("i", 249, y=140)],
        ]
        table = detect_table(as_lines(rows))
        assert table is not None
        assert table.columnCount == 3

    def test_single_row_is_not_a_table(self, grid):
        assert detect_table(as_lines(grid(rows=1))) is None

    def test_misaligned_rows_rejected(self, make_run):
        rows = [
            [make_run("a", 50, y=100), make_run("b", 150, y=100)],
            [make_run("c", 80, y=120), make_run("d", 190, y=120)],
            [make_run("e", 110, y=140), make_run("f", 230, y=140)],
        ]
        assert detect_table(as_lines(rows)) is None

    def test_minority_row_shapes_ignored(self, grid, make_run):
        rows = grid() + [[make_run("note", 50, y=160), make_run("x", 150, y=160)]]
        table = detect_table(as_lines(rows))
        assert table.columnCount == 3
        assert len(table.rows) == 3

    def test_from_raw_items(self, grid):
        items = [run for row in grid() for run in row]
        table = detect_table_from_items(list(reversed(items)))
        assert table is not None
        assert table.columnCount == 3
        assert [cell.text for cell in table.rows[2].cells] == ["r2c0", "r2c1", "r2c2"]


class TestDetectColumns:
    def column_page(self, make_line, right_x):
        left = [run for y in (100, 116) for run in make_line(["some", "words", "here"], x=50, y=y)]
        right = [run for y in (100, 116) for run in make_line(["more", "text"], x=right_x, y=y)]
        return left + right

    def test_wide_gutter_splits(self, make_line):
        items = self.column_page(make_line, right_x=230)
        detection = detect_columns(items, page_width=600)
        assert detection is not None
        assert detection.columnCount == 2
        assert [c.x for c in detection.columns] == [0, 230]
        assert detection.columns[1].width == 370
        assert len(detection.columns[0].items) == 6
        assert len(detection.columns[1].items) == 4

    def test_fractional_edges(self, make_run):
        """Edges that round across the gutter boundary still leave it open."""
        left = [make_run("left", 10, y=100 + 16 * k, width=90.4) for k in range(3)]
        right = [make_run("right", 199.6, y=100 + 16 * k, width=100) for k in range(3)]
        detection = detect_columns(left + right, page_width=600)
        assert detection is not None
        assert detection.columnCount == 2
        assert len(detection.columns[1].items) == 3

    def test_narrow_gutter_is_not_a_column(self, make_line):
        assert detect_columns(self.column_page(make_line, right_x=170), page_width=600) is None

    def test_spanning_run_blocks_gutter(self, make_line, make_run):
        items = self.column_page(make_line, right_x=230) + [make_run("A heading across both columns", 50, y=60)]
        assert detect_columns(items, page_width=600) is None

    def test_empty(self):
        assert detect_columns([], page_width=600) is None

    def test_gap_ratio_option(self, make_line):
        items = self.column_page(make_line, right_x=230)
        assert detect_columns(items, 600, DetectorOptions(column_gap_ratio=0.2)) is None


class TestHeadingsAndLists:
    @pytest.mark.parametrize("size,level", [(24, 1), (21, 2), (18, 3), (15, None), (12, None)])
    def test_heading_levels(self, size, level):
        assert classify_heading(size, 12) == level

    def test_zero_reference(self):
        assert classify_heading(24, 0) is None

    @pytest.mark.parametrize("text,expected", [
        ("- item", True),
        ("• bullet", True),
        ("1. first", True),
        ("2) second", True),
        ("a) sub item", True),
        ("iv. roman", True),
        ("1.5 million", False),
        ("Hello", False),
        ("-dash", False),
    ])
    def test_list_items(self, text, expected):
        assert is_list_item(text) is expected

    def test_options_validation(self):
        assert DetectorOptions().validate()
        assert not DetectorOptions(heading_ratio_h1=1.2).validate()
        assert not DetectorOptions(min_table_rows=1).validate()


class TestDetectStructures:
    def test_mixed_page(self, make_run):
        lines = [
            build_text_line([(0, make_run("Title", 50, y=50, height=24, font_size=24))]),
            build_text_line([(1, make_run("body text", 50, y=100))]),
            build_text_line([(2, make_run("more body", 50, y=116))]),
            build_text_line([(3, make_run("-", 50, y=140)), (4, make_run("item", 62, y=140))]),
            build_text_line([(5, make_run("closing words", 50, y=200))]),
        ]
        structures = detect_structures(lines)
        assert [s.type for s in structures] == [
            StructureType.HEADER,
            StructureType.PARAGRAPH,
            StructureType.LIST,
            StructureType.PARAGRAPH,
        ]
        assert structures[0].level == 1
        assert structures[1].lineIndices == [1, 2]
        assert structures[3].lineIndices == [4]

    def test_table_annotation(self, grid):
        structures = detect_structures(as_lines(grid()))
        tables = [s for s in structures if s.type == StructureType.TABLE]
        assert len(tables) == 1
        assert tables[0].lineIndices == [0, 1, 2]

    def test_sorted_by_position(self, grid):
        structures = detect_structures(as_lines(grid()))
        tops = [s.rect.top for s in structures]
        assert tops == sorted(tops)

    def test_empty(self):
        assert detect_structures([]) == []


class TestTextDirection:
    def test_rtl_script(self, make_run):
        assert detect_text_direction([make_run("שלום", 0)]) == "rtl"

    def test_ltr_stream(self, make_line):
        assert detect_text_direction(make_line(["left", "to", "right"])) == "ltr"

    def test_rtl_stream_movement(self, make_line):
        assert detect_text_direction(list(reversed(make_line(["moving", "leftward"])))) == "rtl"

    def test_empty(self):
        assert detect_text_direction([]) == "ltr"
