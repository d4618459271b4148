"""
Tests for request and page payload validation
"""

import math

import pytest

from utils.validation import (
    VALIDATION_CONSTANTS,
    ReconstructionInputError,
    ensure_valid_page,
    validate_document_request,
    validate_page_dimensions,
    validate_page_payload,
)


class TestPageDimensions:
    def test_valid(self):
        assert validate_page_dimensions(612, 792.0) == (True, None)

    def test_zero_size_accepted(self):
        assert validate_page_dimensions(0, 0)[0]

    @pytest.mark.parametrize("width,height", [
        (-1, 100),
        (100, math.inf),
        (math.nan, 100),
        ("612", 792),
        (True, 792),
        (VALIDATION_CONSTANTS['MAX_PAGE_DIMENSION'] + 1, 100),
    ])
    def test_invalid(self, width, height):
        is_valid, error = validate_page_dimensions(width, height)
        assert not is_valid
        assert error


class TestPagePayload:
    def test_valid(self, make_record):
        assert validate_page_payload({'width': 612, 'height': 792, 'items': [make_record("a", 0)]})[0]

    def test_missing_fields_default(self):
        assert validate_page_payload({})[0]

    def test_items_must_be_list(self):
        is_valid, error = validate_page_payload({'items': "abc"})
        assert not is_valid
        assert "list" in error

    def test_ensure_valid_page_raises(self):
        with pytest.raises(ReconstructionInputError, match="Page 3"):
            ensure_valid_page({'pageNumber': 3, 'width': -5, 'height': 10})


class TestDocumentRequest:
    def test_bounds(self):
        assert validate_document_request(1)[0]
        assert not validate_document_request(0)[0]
        assert not validate_document_request(VALIDATION_CONSTANTS['MAX_PAGES_PER_REQUEST'] + 1)[0]
