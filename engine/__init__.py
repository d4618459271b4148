"""
Text Reconstruction Engine

Core engine module for coordinating page reconstruction.
Contains the configuration, the per-page coordinator and the multi-page pool.
"""

__version__ = "2.0.0"

from engine.config import ReconstructionConfig
from engine.reconstructor import PageReconstructor
from engine.document import reconstruct_document, reconstruct_document_async

__all__ = [
    'ReconstructionConfig',
    'PageReconstructor',
    'reconstruct_document',
    'reconstruct_document_async',
]
