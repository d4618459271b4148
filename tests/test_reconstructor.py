"""
End-to-end tests for the per-page reconstruction pipeline.
"""

import pytest

from engine.config import ReconstructionConfig
from engine.reconstructor import PageReconstructor
from models.layout_types import BoundaryDecisionType, PageInput, StructureType
from utils.validation import ConfigValidationError, ReconstructionInputError


@pytest.fixture
def reconstructor():
    return PageReconstructor()


class TestReconstruct:
    """Tests for PageReconstructor.reconstruct"""

    def test_paragraph_page(self, reconstructor, paragraph_page):
        layout = reconstructor.reconstruct(paragraph_page)

        assert layout.pageNumber == 1
        assert layout.error is None
        assert len(layout.lines) == 4
        assert len(layout.regions) == 1
        assert [p.text for p in layout.regions[0].paragraphs] == [
            "The quick brown fox jumps over the dog",
            "Second paragraph starts here and ends",
        ]
        assert layout.regions[0].flowAllowed
        assert layout.direction == "ltr"

    def test_merged_runs_per_line(self, reconstructor, paragraph_page):
        layout = reconstructor.reconstruct(paragraph_page)
        assert [run.text for run in layout.lines[0].mergedRuns] == ["The quick brown fox"]
        assert layout.lines[0].mergedRuns[0].width == 108

    def test_statistics(self, reconstructor, paragraph_page):
        stats = reconstructor.reconstruct(paragraph_page).statistics
        assert stats.medianFontSize == 12
        assert stats.medianHeight == 12
        assert stats.pageWidth == 612
        assert stats.gaps.medianWordGap == 4
        assert stats.fonts.dominantFontFamily == "Helvetica"

    def test_detectors(self, reconstructor, paragraph_page):
        layout = reconstructor.reconstruct(paragraph_page)
        assert layout.columns is None
        assert layout.table is None
        paragraphs = [s for s in layout.structures if s.type == StructureType.PARAGRAPH]
        assert [s.lineIndices for s in paragraphs] == [[0, 1], [2, 3]]
        assert len(layout.spatialGroups) >= 1

    def test_item_indices_reference_sorted_runs(self, reconstructor, paragraph_page):
        paragraph_page['items'] = list(reversed(paragraph_page['items']))
        layout = reconstructor.reconstruct(paragraph_page)
        indices = [i for line in layout.lines for i in line.itemIndices]
        assert sorted(indices) == list(range(len(paragraph_page['items'])))
        assert [item.text for item in layout.lines[0].items] == ["The", "quick", "brown", "fox"]

    def test_malformed_records_filtered(self, reconstructor, paragraph_page):
        paragraph_page['items'].append({'text': 'broken'})
        paragraph_page['items'].append({'text': '', 'x': 0, 'y': 0, 'width': 1, 'height': 1, 'fontSize': 12})
        assert len(reconstructor.reconstruct(paragraph_page).lines) == 4

    def test_hard_obstacle_blocks_flow(self, reconstructor, paragraph_page):
        paragraph_page['obstacles'] = {'hard': [{'left': 100, 'top': 102, 'width': 20, 'height': 6}]}
        layout = reconstructor.reconstruct(PageInput.model_validate(paragraph_page))
        first = layout.regions[0]
        assert not first.flowAllowed
        assert first.overlapsObstacle

    def test_empty_page(self, reconstructor):
        layout = reconstructor.reconstruct({'pageNumber': 2, 'width': 612, 'height': 792, 'items': []})
        assert layout.pageNumber == 2
        assert layout.lines == []
        assert layout.regions == []
        assert layout.statistics.medianFontSize == 12

    def test_invalid_page_raises(self, reconstructor):
        with pytest.raises(ReconstructionInputError):
            reconstructor.reconstruct({'width': -1, 'height': 792, 'items': []})

    def test_invalid_config_raises(self):
        with pytest.raises(ConfigValidationError):
            PageReconstructor(ReconstructionConfig(max_workers=0))

    def test_deterministic(self, reconstructor, paragraph_page):
        first = reconstructor.reconstruct(paragraph_page)
        second = reconstructor.reconstruct(paragraph_page)
        assert first.model_dump_json() == second.model_dump_json()


class TestReconstructLineText:
    def test_line(self, reconstructor, make_record):
        records = [make_record("fl", 36, width=11), make_record("ight", 47, width=22), make_record("Time", 90)]
        result = reconstructor.reconstruct_line_text(records)
        assert result.text == "flight Time"
        assert [d.type for d in result.decisions] == [BoundaryDecisionType.JOIN, BoundaryDecisionType.SPACE]

    def test_profile_override(self, reconstructor, make_record):
        records = [make_record("中文", 0, width=24), make_record("字", 36, width=12)]
        assert reconstructor.reconstruct_line_text(records, "cjk-default").text == "中文字"
        assert reconstructor.reconstruct_line_text(records, "latin-default").text == "中文 字"
