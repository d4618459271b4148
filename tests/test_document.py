"""
Tests for concurrent multi-page reconstruction.
"""

import asyncio
import copy
import threading
import time

import pytest

from engine.config import ReconstructionConfig
from engine.document import reconstruct_document, reconstruct_document_async
from engine.reconstructor import PageReconstructor
from utils.validation import ReconstructionInputError


def numbered(page, number):
    page = copy.deepcopy(page)
    page['pageNumber'] = number
    return page


class TestReconstructDocument:
    def test_order_preserved(self, paragraph_page):
        pages = [numbered(paragraph_page, n) for n in (3, 1, 2)]
        layouts = reconstruct_document(pages, max_workers=2)
        assert [layout.pageNumber for layout in layouts] == [3, 1, 2]
        assert all(layout.error is None for layout in layouts)
        assert all(len(layout.lines) == 4 for layout in layouts)

    def test_failed_page_does_not_abort(self, paragraph_page):
        bad = numbered(paragraph_page, 2)
        bad['width'] = -10
        layouts = reconstruct_document([numbered(paragraph_page, 1), bad, numbered(paragraph_page, 3)])
        assert [layout.pageNumber for layout in layouts] == [1, 2, 3]
        assert layouts[0].error is None
        assert "non-negative" in layouts[1].error
        assert layouts[1].lines == []
        assert layouts[2].error is None

    def test_invalid_page_model_uses_position(self, paragraph_page):
        bad = numbered(paragraph_page, 0)
        layouts = reconstruct_document([numbered(paragraph_page, 1), bad])
        assert layouts[1].pageNumber == 2
        assert layouts[1].error

    def test_empty_document_rejected(self):
        with pytest.raises(ReconstructionInputError):
            reconstruct_document([])

    def test_profile_applies_to_every_page(self, make_record):
        page = {'pageNumber': 1, 'width': 200, 'height': 200, 'items': [
            make_record("中文", 0, width=24), make_record("字", 36, width=12),
        ]}
        config = ReconstructionConfig.default().with_profile("cjk-default")
        layouts = reconstruct_document([page, numbered(page, 2)], config)
        assert all(layout.lines[0].mergedRuns[0].text == "中文字" for layout in layouts)

    def test_async_entry_point(self, paragraph_page):
        layouts = asyncio.run(reconstruct_document_async([paragraph_page], max_workers=1))
        assert len(layouts) == 1
        assert len(layouts[0].regions) == 1

    def test_concurrency_bounded_by_max_workers(self, paragraph_page, monkeypatch):
        """No more than max_workers pages are ever inside reconstruct at once"""
        lock = threading.Lock()
        active, peak = [0], [0]
        original = PageReconstructor.reconstruct

        def tracked(self, page):
            with lock:
                active[0] += 1
                peak[0] = max(peak[0], active[0])
            try:
                time.sleep(0.02)
                return original(self, page)
            finally:
                with lock:
                    active[0] -= 1

        monkeypatch.setattr(PageReconstructor, "reconstruct", tracked)
        layouts = reconstruct_document([numbered(paragraph_page, n) for n in range(1, 9)], max_workers=2)
        assert [layout.pageNumber for layout in layouts] == list(range(1, 9))
        assert 1 <= peak[0] <= 2
