"""Text Geometry Reconstruction Python Server"""

import sys
import logging
import asyncio
from typing import Optional
import os

import uvicorn
from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from rich.console import Console
from rich.logging import RichHandler

from engine.config import ReconstructionConfig
from engine.document import reconstruct_document_async
from engine.reconstructor import PageReconstructor
from models.layout_types import (
    LineRequest,
    ReconstructRequest,
    ReconstructResponse,
    ReconstructedLine,
)
from processors.boundary_classifier import CALIBRATION_PROFILES, DEFAULT_PROFILE
from utils.endpoint_decorators import handle_reconstruction_errors

API_VERSION = "1.0.0"
ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
DEFAULT_TIMEOUT_SECONDS = 300
MIN_TIMEOUT_SECONDS = 30
MAX_TIMEOUT_SECONDS = 600

logger = logging.getLogger("rich")

app = FastAPI(
    title="Text Geometry Reconstruction API",
    description="Reconstruct words, lines, paragraphs, regions, columns and tables from positioned glyph runs",
    version=API_VERSION
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _json_response(model) -> Response:
    # Non-finite floats (an obstacle-free region's distance) serialize as null
    return Response(content=model.model_dump_json(), media_type="application/json")


@app.get("/")
async def root():
    """Health check endpoint"""
    return {
        "message": "Text Geometry Reconstruction API",
        "version": API_VERSION,
        "features": [
            "Word boundary reconstruction (join / space / line break)",
            "Line, flow region and paragraph grouping",
            "Obstacle-aware text flow",
            "Column, table, heading and list detection",
            "Script-aware calibration profiles",
        ]
    }


@app.get("/health")
async def health_check():
    """Health check with dependency verification"""
    try:
        import fastapi
        import numpy
        import pydantic

        return {
            "status": "healthy",
            "version": API_VERSION,
            "dependencies": {
                "fastapi": fastapi.__version__,
                "numpy": numpy.__version__,
                "pydantic": pydantic.VERSION,
            }
        }
    except ImportError as e:
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "error": f"Missing dependency: {str(e)}"
            }
        )


@app.get("/profiles")
async def list_profiles():
    """Available calibration profiles"""
    return {
        "default": DEFAULT_PROFILE,
        "profiles": [
            {
                "name": p.name,
                "script": p.script,
                "thresholdScale": p.threshold_scale,
                "digitThresholdMin": p.digit_threshold_min,
                "joinCjk": p.join_cjk,
            }
            for p in CALIBRATION_PROFILES.values()
        ]
    }


@app.post("/reconstruct", response_model=ReconstructResponse)
@handle_reconstruction_errors
async def reconstruct(
    *,
    body: ReconstructRequest,
    processing_timeout: Optional[int] = Query(DEFAULT_TIMEOUT_SECONDS, ge=MIN_TIMEOUT_SECONDS, le=MAX_TIMEOUT_SECONDS, description="Processing timeout in seconds")
):
    """
    Reconstruct text geometry for every page of a document.

    **Input:**
    - `pages`: glyph runs per page in the top-left coordinate convention, with optional obstacles
    - `profile`: calibration profile name (default: `auto-default`, see [/profiles](#/default/list_profiles_profiles_get))
    - `maxWorkers`: pages reconstructed concurrently

    **Returns:**
    - One layout per page, in input order. A page that fails carries `error` instead of aborting the request.
    """
    config = ReconstructionConfig.default().with_profile(body.profile)

    logger.info(f"Reconstructing {len(body.pages)} pages with profile={config.profile}")

    pages = await reconstruct_document_async(body.pages, config, max_workers=body.maxWorkers)

    logger.info(f"Successfully reconstructed {len(pages)} pages")
    return _json_response(ReconstructResponse(pages=pages))


@app.post("/reconstruct/line", response_model=ReconstructedLine)
@handle_reconstruction_errors
async def reconstruct_line(
    *,
    body: LineRequest,
    processing_timeout: Optional[int] = Query(DEFAULT_TIMEOUT_SECONDS, ge=MIN_TIMEOUT_SECONDS, le=MAX_TIMEOUT_SECONDS, description="Processing timeout in seconds")
):
    """
    Reconstruct the text of a single line, with every boundary decision.

    Useful for diagnosing why two runs were or were not joined: each decision
    reports its gap, threshold, confidence and the deciding rule.
    """
    reconstructor = PageReconstructor(ReconstructionConfig.default())
    result = await asyncio.to_thread(reconstructor.reconstruct_line_text, body.items, body.profile)
    return _json_response(result)


def _configure_server_logging():
    """Configure logging with Rich handler and filters for clean output"""
    console = Console(force_terminal=True)

    # Get level from env, default to INFO
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    class ShutdownFilter(logging.Filter):
        """Filter out shutdown-related log messages"""
        def filter(self, record):
            if record.exc_info and record.exc_info[0] in (KeyboardInterrupt, asyncio.CancelledError):
                return False
            if "CancelledError" in str(record.msg) or "KeyboardInterrupt" in str(record.msg):
                return False
            return True

    rich_handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        show_time=False,
        show_path=True
    )
    rich_handler.addFilter(ShutdownFilter())

    # Silence everything by default
    logging.basicConfig(level=logging.WARNING, format="%(message)s", handlers=[rich_handler])

    # Allow server startup logs
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    logging.getLogger("fastapi").setLevel(logging.INFO)

    # Set specific module log levels
    for module_name in ["main", "rich", "engine", "processors", "utils"]:
        logging.getLogger(module_name).setLevel(log_level)

    return console


def _find_free_port(start_port: int = 8000) -> int:
    """Find an available port starting from the given port"""
    import socket

    port = start_port
    max_port = start_port + 100

    while port < max_port:
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                s.bind(('localhost', port))
                return port
        except OSError:
            port += 1

    return start_port


server_console = _configure_server_logging()

if __name__ == "__main__":
    free_port = _find_free_port()
    server_console.print(f"[bold green]Starting server on http://localhost:{free_port}[/bold green]")

    try:
        uvicorn.run("main:app", host="0.0.0.0", port=free_port, reload=True, log_config=None)
    except KeyboardInterrupt:
        server_console.print("\n[bold yellow]Server stopped.[/bold yellow]")
        sys.exit(0)
