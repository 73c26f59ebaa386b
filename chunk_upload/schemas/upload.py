"""
Pydantic schemas for API request/response validation
"""
from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from ..models import SessionState


class SessionSnapshot(BaseModel):
    """Point-in-time copy of an upload session, safe to hand to callers"""
    model_config = ConfigDict(frozen=True)

    uuid: str
    filename: str
    total_chunks: int
    uploaded: List[bool] = Field(..., description="Arrival flag per chunk index")
    path: str = Field(..., description="Destination of the merged file")
    completed: bool
    size: int = Field(..., description="Declared total size in bytes")
    uploaded_at: datetime = Field(..., description="Session creation time")
    state: SessionState
    received_chunks: int
    progress_percent: float


class SessionSummary(BaseModel):
    """Condensed session entry for listings"""
    uuid: str
    filename: str
    state: SessionState
    progress: str
    uploaded_at: datetime


class SessionListResponse(BaseModel):
    total: int
    sessions: List[SessionSummary]


class MergeResponse(BaseModel):
    """Successful merge response"""
    status: str = "success"
    uuid: str
    path: str
    size: int


class CancelResponse(BaseModel):
    uuid: str
    status: str = "cancelled"


class ErrorResponse(BaseModel):
    """Error body returned for every failed request"""
    error: str
    detail: str
