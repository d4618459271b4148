"""
Request validation and error types for text reconstruction.

The geometry core never raises for bad geometry: malformed glyph runs are
filtered and degenerate statistics fall back to defaults. The exceptions
below belong to the request and page-pool layers only.
"""

import math
from typing import Any, Dict, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

# Validation constants
VALIDATION_CONSTANTS = {
    'MAX_PAGES_PER_REQUEST': 500,
    'MAX_ITEMS_PER_PAGE': 200_000,
    'MAX_PAGE_DIMENSION': 100_000.0,
    'MAX_PROCESSING_TIME_SECONDS': 300,  # 5 minutes
}


class ReconstructionError(Exception):
    """Base exception for reconstruction failures"""
    pass


class ReconstructionInputError(ReconstructionError):
    """Request-level payload problem (bad page size, too many pages)"""
    pass


class ConfigValidationError(ReconstructionError):
    """Invalid reconstruction configuration"""
    pass


def validate_page_dimensions(width: Any, height: Any) -> Tuple[bool, Optional[str]]:
    """
    Validate page width/height

    A page of size 0x0 is accepted: it means the decoder did not report a size
    and detectors that need the page width derive it from the content.

    Returns:
        Tuple of (is_valid, error_message)
    """
    for name, value in (('width', width), ('height', height)):
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            return False, f"Page {name} must be a number, got {type(value).__name__}"
        if not math.isfinite(value):
            return False, f"Page {name} must be finite"
        if value < 0:
            return False, f"Page {name} must be non-negative, got {value}"
        if value > VALIDATION_CONSTANTS['MAX_PAGE_DIMENSION']:
            return False, f"Page {name} too large: {value} (max: {VALIDATION_CONSTANTS['MAX_PAGE_DIMENSION']})"
    return True, None


def validate_page_payload(page: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate one raw page payload before reconstruction

    Individual glyph records are not checked here, the normalizer filters
    them. Only page-level problems are reported.

    Returns:
        Tuple of (is_valid, error_message)
    """
    is_valid, error = validate_page_dimensions(page.get('width', 0.0), page.get('height', 0.0))
    if not is_valid:
        return False, error

    items = page.get('items', [])
    if not isinstance(items, list):
        return False, f"Page items must be a list, got {type(items).__name__}"
    if len(items) > VALIDATION_CONSTANTS['MAX_ITEMS_PER_PAGE']:
        return False, f"Too many glyph runs: {len(items)} (max: {VALIDATION_CONSTANTS['MAX_ITEMS_PER_PAGE']})"

    logger.debug(f"Page payload validation passed: {len(items)} items")
    return True, None


def validate_document_request(page_count: int) -> Tuple[bool, Optional[str]]:
    if page_count < 1:
        return False, "At least one page is required"
    if page_count > VALIDATION_CONSTANTS['MAX_PAGES_PER_REQUEST']:
        return False, f"Too many pages: {page_count} (max: {VALIDATION_CONSTANTS['MAX_PAGES_PER_REQUEST']})"
    return True, None


def ensure_valid_page(page: Dict[str, Any]) -> None:
    """Raise ReconstructionInputError when the page payload is invalid"""
    is_valid, error = validate_page_payload(page)
    if not is_valid:
        page_number = page.get('pageNumber', '?')
        logger.warning(f"Page {page_number} rejected: {error}")
        raise ReconstructionInputError(f"Page {page_number}: {error}")
