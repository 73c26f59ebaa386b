"""Core module exports"""
from .config import Settings, settings
from .exceptions import (
    UploadError,
    ValidationError,
    ChunkIndexError,
    SessionNotFoundError,
    SessionConflictError,
    UploadIncompleteError,
    SessionStateError,
    SizeMismatchError,
    ChunkStorageError,
    MergeError,
)
from .validators import sanitize_filename, validate_session_id

__all__ = [
    "Settings",
    "settings",
    "UploadError",
    "ValidationError",
    "ChunkIndexError",
    "SessionNotFoundError",
    "SessionConflictError",
    "UploadIncompleteError",
    "SessionStateError",
    "SizeMismatchError",
    "ChunkStorageError",
    "MergeError",
    "sanitize_filename",
    "validate_session_id",
]
