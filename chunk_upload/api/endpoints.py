"""
FastAPI endpoints for chunked uploads
"""
import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from starlette.concurrency import run_in_threadpool

from ..models import SessionState
from ..schemas import (
    CancelResponse,
    MergeResponse,
    SessionListResponse,
    SessionSnapshot,
    SessionSummary,
)
from ..services import UploadService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["uploads"])


def get_upload_service(request: Request) -> UploadService:
    """Dependency returning the application's upload service"""
    return request.app.state.upload_service


UploadServiceDep = Annotated[UploadService, Depends(get_upload_service)]


@router.post("/upload", response_model=SessionSnapshot)
async def upload_chunk(
    service: UploadServiceDep,
    file: Annotated[UploadFile, File(description="Chunk payload")],
    uuid: Annotated[str, Form(description="Upload session id")],
    chunk_index: Annotated[int, Form(alias="chunkIndex")],
    total_chunks: Annotated[int, Form(alias="totalChunks")],
    filename: Annotated[str, Form()],
    file_size: Annotated[int, Form(alias="fileSize")],
):
    """
    Upload one chunk of a file.

    The first chunk seen for a ``uuid`` creates the session. Uploading the
    same chunk again replaces its bytes. Returns the session's current state.
    """
    try:
        return await run_in_threadpool(
            service.ingest_chunk,
            uuid,
            chunk_index,
            total_chunks,
            filename,
            file_size,
            file.file,
        )
    finally:
        await file.close()


@router.get("/status", response_model=SessionSnapshot)
async def get_status(
    service: UploadServiceDep,
    uuid: Annotated[str, Query(description="Upload session id")],
):
    """Current state of an upload session, for polling clients"""
    return service.query_status(uuid)


@router.post("/merge", response_model=MergeResponse)
async def merge_upload(
    service: UploadServiceDep,
    uuid: Annotated[str, Form(description="Upload session id")],
):
    """
    Assemble all chunks of a completed upload into the final file.

    Fails with 409 while chunks are missing or another merge is running.
    """
    result = await run_in_threadpool(service.merge, uuid)
    return MergeResponse(uuid=uuid, path=str(result.path), size=result.size)


@router.delete("/upload/{uuid}", response_model=CancelResponse)
async def cancel_upload(uuid: str, service: UploadServiceDep):
    """Cancel an upload session and delete its stored chunks"""
    await run_in_threadpool(service.cancel, uuid)
    return CancelResponse(uuid=uuid)


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    service: UploadServiceDep,
    state: Optional[SessionState] = None,
):
    """List upload sessions, optionally filtered by state"""
    sessions = service.list_sessions(state)
    return SessionListResponse(
        total=len(sessions),
        sessions=[
            SessionSummary(
                uuid=s.uuid,
                filename=s.filename,
                state=s.state,
                progress=f"{s.received_chunks}/{s.total_chunks}",
                uploaded_at=s.uploaded_at,
            )
            for s in sessions
        ],
    )
