"""Schemas module exports"""
from .upload import (
    SessionSnapshot,
    SessionSummary,
    SessionListResponse,
    MergeResponse,
    CancelResponse,
    ErrorResponse,
)

__all__ = [
    "SessionSnapshot",
    "SessionSummary",
    "SessionListResponse",
    "MergeResponse",
    "CancelResponse",
    "ErrorResponse",
]
