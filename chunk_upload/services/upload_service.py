"""
Upload service: the operations exposed to the transport layer.

Wires the registry, chunk store and merge engine together and enforces
the ordering between them (store chunk, then record arrival; claim
session, then merge).
"""
import logging
from pathlib import Path
from typing import BinaryIO, List, Optional

from ..core.config import Settings
from ..core.exceptions import ChunkIndexError, SessionNotFoundError, ValidationError
from ..core.validators import sanitize_filename, validate_session_id
from ..models import SessionState
from ..schemas import SessionSnapshot
from .chunk_store import ChunkStore
from .merge import MergeEngine, MergeResult
from .registry import UploadRegistry

logger = logging.getLogger(__name__)


class UploadService:
    """Chunk ingest, status query, merge, cancel and expiry for upload sessions."""

    def __init__(
        self,
        registry: UploadRegistry,
        chunk_store: ChunkStore,
        merge_engine: MergeEngine,
        max_total_chunks: int = 100000,
        idle_ttl: float = 86400,
        merged_ttl: float = 3600,
        orphan_grace: float = 60,
    ):
        self.registry = registry
        self.chunk_store = chunk_store
        self.merge_engine = merge_engine
        self.max_total_chunks = max_total_chunks
        self.idle_ttl = idle_ttl
        self.merged_ttl = merged_ttl
        self.orphan_grace = orphan_grace

    @classmethod
    def from_settings(cls, settings: Settings) -> "UploadService":
        chunk_store = ChunkStore(Path(settings.CHUNKS_DIR), buffer_size=settings.COPY_BUFFER_SIZE)
        upload_dir = Path(settings.UPLOAD_DIR)
        upload_dir.mkdir(parents=True, exist_ok=True)
        return cls(
            registry=UploadRegistry(upload_dir),
            chunk_store=chunk_store,
            merge_engine=MergeEngine(chunk_store, buffer_size=settings.COPY_BUFFER_SIZE),
            max_total_chunks=settings.MAX_TOTAL_CHUNKS,
            idle_ttl=settings.SESSION_IDLE_TTL_SECONDS,
            merged_ttl=settings.MERGED_SESSION_TTL_SECONDS,
        )

    def _validate_ingest(self, session_id, index, total_chunks, filename, size):
        validate_session_id(session_id)
        sanitize_filename(filename)
        if total_chunks < 1:
            raise ValidationError(f"totalChunks must be positive, got {total_chunks}")
        if total_chunks > self.max_total_chunks:
            raise ValidationError(
                f"totalChunks {total_chunks} exceeds the limit of {self.max_total_chunks}"
            )
        if size < 0:
            raise ValidationError(f"fileSize must not be negative, got {size}")
        if not 0 <= index < total_chunks:
            raise ChunkIndexError(index, total_chunks)

    def ingest_chunk(
        self,
        session_id: str,
        index: int,
        total_chunks: int,
        filename: str,
        size: int,
        reader: BinaryIO,
    ) -> SessionSnapshot:
        """
        Store one chunk and record its arrival.

        The session is created (or checked against its first declaration)
        before any bytes are written. The arrival flag is only set after the
        write succeeded, so a storage failure leaves the bitmap unchanged.
        """
        self._validate_ingest(session_id, index, total_chunks, filename, size)
        self.registry.create_or_get(session_id, total_chunks, filename, size)

        self.chunk_store.write_chunk(session_id, index, reader)
        try:
            snapshot = self.registry.record_and_snapshot(session_id, index)
        except SessionNotFoundError:
            # Cancelled or expired while the bytes were being written
            self.chunk_store.delete_chunk(session_id, index)
            self.chunk_store.prune_session_area(session_id)
            raise

        logger.info(
            f"Received chunk {index + 1}/{total_chunks} for session {session_id} "
            f"({snapshot.received_chunks}/{snapshot.total_chunks} stored)"
        )
        return snapshot

    def query_status(self, session_id: str) -> SessionSnapshot:
        return self.registry.get_status(session_id)

    def list_sessions(self, state: Optional[SessionState] = None) -> List[SessionSnapshot]:
        return self.registry.list_sessions(state)

    def merge(self, session_id: str) -> MergeResult:
        """
        Merge a completed session into its destination file.

        Raises:
            SessionNotFoundError: unknown session
            UploadIncompleteError: chunks are still missing
            SessionStateError: the session is already merging or merged
            SizeMismatchError, ChunkStorageError, MergeError: the merge failed;
                chunks are kept and the session accepts another merge attempt
        """
        snapshot = self.registry.begin_merge(session_id)
        try:
            result = self.merge_engine.merge(snapshot)
        except Exception:
            self.registry.abort_merge(session_id)
            raise
        self.registry.mark_merged(session_id, result.path)
        return result

    def cancel(self, session_id: str) -> SessionSnapshot:
        """Abandon an upload: forget the session and delete its chunks."""
        snapshot = self.registry.retire(session_id)
        self.chunk_store.delete_session_area(session_id)
        logger.info(f"Cancelled upload session {session_id}")
        return snapshot

    def sweep(self) -> List[str]:
        """Evict idle and long-merged sessions and release their chunk storage."""
        expired = self.registry.expire(self.idle_ttl, self.merged_ttl)
        for session_id in expired:
            self.chunk_store.delete_session_area(session_id)
        if expired:
            logger.info(f"Expired {len(expired)} upload session(s): {', '.join(expired)}")

        # Chunk directories left behind by a write that raced a cancel or expiry
        for session_id in self.chunk_store.list_session_areas(older_than=self.orphan_grace):
            if session_id not in self.registry:
                logger.warning(f"Removing orphaned chunk directory {session_id}")
                self.chunk_store.delete_session_area(session_id)
        return expired
