"""
Decorators for FastAPI endpoint error handling.

This module provides the decorator that wraps reconstruction endpoints with
a processing timeout and maps engine exceptions onto HTTP status codes.
"""

import logging
import asyncio
from functools import wraps
from typing import Callable, Optional

from fastapi import HTTPException
from pydantic import ValidationError

from utils.validation import (
    ConfigValidationError,
    ReconstructionInputError,
    VALIDATION_CONSTANTS,
)

logger = logging.getLogger(__name__)


def handle_reconstruction_errors(func: Callable) -> Callable:
    """
    Decorator to handle common reconstruction endpoint patterns:
    - Processing timeout management
    - Standardized error handling

    The decorated endpoint may accept `processing_timeout` as a keyword
    argument; otherwise the configured maximum processing time applies.

    Status codes:
    - 400: ReconstructionInputError, ConfigValidationError, invalid payload
    - 408: processing timed out
    - 500: anything else
    """
    @wraps(func)
    async def wrapper(*args, **kwargs):
        processing_timeout: Optional[int] = kwargs.get('processing_timeout')
        timeout_seconds = processing_timeout or VALIDATION_CONSTANTS['MAX_PROCESSING_TIME_SECONDS']

        try:
            return await asyncio.wait_for(func(*args, **kwargs), timeout=timeout_seconds)

        except asyncio.TimeoutError:
            logger.error(f"Reconstruction timed out after {timeout_seconds}s")
            raise HTTPException(
                status_code=408,
                detail=f"Reconstruction timed out after {timeout_seconds} seconds."
            )
        except (ReconstructionInputError, ConfigValidationError) as e:
            logger.warning(f"Rejected reconstruction request: {e}")
            raise HTTPException(
                status_code=400,
                detail=str(e)
            )
        except ValidationError as e:
            logger.warning(f"Invalid page payload: {e.error_count()} errors")
            raise HTTPException(
                status_code=400,
                detail=f"Invalid page payload: {str(e)}"
            )
        except HTTPException:
            # Re-raise HTTP exceptions as-is
            raise
        except Exception as e:
            logger.error(f"Unexpected error during reconstruction: {e}")
            logger.exception("Full exception details:")
            raise HTTPException(
                status_code=500,
                detail=f"Internal server error during reconstruction: {str(e)}"
            )

    return wrapper
