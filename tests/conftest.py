"""
Test configuration and fixtures
"""
import io

import pytest
from fastapi.testclient import TestClient

from chunk_upload.core import Settings
from chunk_upload.main import create_app
from chunk_upload.services import ChunkStore, UploadRegistry, UploadService


@pytest.fixture
def settings(tmp_path):
    return Settings(
        CHUNKS_DIR=str(tmp_path / "chunks"),
        UPLOAD_DIR=str(tmp_path / "uploads"),
        COPY_BUFFER_SIZE=4,
        SESSION_IDLE_TTL_SECONDS=60,
        MERGED_SESSION_TTL_SECONDS=60,
        SWEEP_INTERVAL_SECONDS=3600,
    )


@pytest.fixture
def chunk_store(settings):
    return ChunkStore(settings.CHUNKS_DIR, buffer_size=settings.COPY_BUFFER_SIZE)


@pytest.fixture
def registry(settings):
    return UploadRegistry(settings.UPLOAD_DIR)


@pytest.fixture
def service(settings):
    return UploadService.from_settings(settings)


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def ingest(service):
    """Upload one chunk through the service with sensible defaults."""
    def _ingest(session_id, index, payload, total_chunks=3, filename="report.bin", size=3):
        return service.ingest_chunk(
            session_id, index, total_chunks, filename, size, io.BytesIO(payload)
        )
    return _ingest
