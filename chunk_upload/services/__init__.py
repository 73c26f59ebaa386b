"""Services module exports"""
from .chunk_store import ChunkStore
from .registry import UploadRegistry
from .merge import MergeEngine, MergeResult
from .upload_service import UploadService
from .sweeper import SessionSweeper

__all__ = [
    "ChunkStore",
    "UploadRegistry",
    "MergeEngine",
    "MergeResult",
    "UploadService",
    "SessionSweeper",
]
