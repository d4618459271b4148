"""
Multi-page reconstruction.

Pages are independent, so a document is reconstructed with one task per
page under a bounded semaphore, each page running in a worker thread.
Results come back in input order. A failing page yields a PageLayout that
carries the error instead of aborting the document.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError

from engine.config import ReconstructionConfig
from engine.reconstructor import PageReconstructor
from models.layout_types import PageInput, PageLayout
from utils.font_metrics import FontMetricsResolver
from utils.validation import ReconstructionInputError, validate_document_request

logger = logging.getLogger(__name__)

PagePayload = Union[PageInput, Dict[str, Any]]


def _page_number(page: PagePayload, position: int) -> int:
    if isinstance(page, PageInput):
        return page.pageNumber
    number = page.get('pageNumber') if isinstance(page, dict) else None
    if isinstance(number, int) and not isinstance(number, bool) and number >= 1:
        return number
    return position + 1


async def reconstruct_document_async(
    pages: Sequence[PagePayload],
    config: Optional[ReconstructionConfig] = None,
    max_workers: Optional[int] = None,
    resolver: Optional[FontMetricsResolver] = None,
) -> List[PageLayout]:
    """
    Reconstruct every page of a document concurrently.

    Args:
        pages: Page payloads in document order
        config: Reconstruction configuration (uses defaults if None)
        max_workers: Concurrent page workers (defaults to config.max_workers)
        resolver: Font metrics resolver shared read-only by all pages

    Returns:
        One PageLayout per input page, in input order

    Raises:
        ReconstructionInputError: If the page count is out of range
        ConfigValidationError: If the configuration is invalid
    """
    config = config or ReconstructionConfig.default()
    is_valid, error = validate_document_request(len(pages))
    if not is_valid:
        raise ReconstructionInputError(error)

    reconstructor = PageReconstructor(config, resolver)
    workers = max(1, max_workers or config.max_workers)
    semaphore = asyncio.Semaphore(workers)

    async def run_page(position: int, page: PagePayload) -> PageLayout:
        page_number = _page_number(page, position)
        async with semaphore:
            try:
                return await asyncio.to_thread(reconstructor.reconstruct, page)
            except (ReconstructionInputError, ValidationError) as e:
                logger.warning(f"Page {page_number} rejected: {e}")
                return PageLayout(pageNumber=page_number, error=str(e))
            except Exception as e:
                logger.warning(f"Page {page_number} failed: {e}", exc_info=True)
                return PageLayout(pageNumber=page_number, error=f"Reconstruction failed: {e}")

    results = await asyncio.gather(*(run_page(i, page) for i, page in enumerate(pages)))

    failed = sum(1 for layout in results if layout.error)
    logger.info(f"Reconstructed {len(results)} pages with {workers} workers ({failed} failed)")
    return list(results)


def reconstruct_document(
    pages: Sequence[PagePayload],
    config: Optional[ReconstructionConfig] = None,
    max_workers: Optional[int] = None,
    resolver: Optional[FontMetricsResolver] = None,
) -> List[PageLayout]:
    """Synchronous wrapper around reconstruct_document_async for callers without an event loop"""
    return asyncio.run(reconstruct_document_async(pages, config, max_workers, resolver))
