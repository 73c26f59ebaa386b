"""
Upload session registry.

Maps session id to session state and serializes every read and write of
that state through a single lock. Callers only ever receive snapshots.
"""
import logging
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional

from ..core.exceptions import (
    ChunkIndexError,
    SessionConflictError,
    SessionNotFoundError,
    SessionStateError,
    UploadIncompleteError,
)
from ..core.validators import sanitize_filename
from ..models import SessionState, UploadSession
from ..schemas import SessionSnapshot

logger = logging.getLogger(__name__)


def _snapshot(session: UploadSession) -> SessionSnapshot:
    received = session.received_count()
    progress = (received / session.total_chunks * 100) if session.total_chunks > 0 else 0
    return SessionSnapshot(
        uuid=session.session_id,
        filename=session.filename,
        total_chunks=session.total_chunks,
        uploaded=list(session.chunk_arrived),
        path=str(session.destination_path),
        completed=session.completed,
        size=session.expected_size,
        uploaded_at=session.created_at,
        state=session.state,
        received_chunks=received,
        progress_percent=round(progress, 2),
    )


class UploadRegistry:
    """
    In-memory registry of upload sessions.

    One coarse lock covers the whole map. Every operation holding it does
    at most a scan of one session's arrival bitmap, so contention stays low
    even though unrelated sessions share the lock.
    """

    def __init__(self, upload_dir: Path):
        self.upload_dir = Path(upload_dir)
        self._sessions: Dict[str, UploadSession] = {}
        self._lock = threading.Lock()

    def _get(self, session_id: str) -> UploadSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def create_or_get(
        self, session_id: str, total_chunks: int, filename: str, size: int
    ) -> SessionSnapshot:
        """
        Return the session for ``session_id``, creating it on first sight.

        The first declaration fixes the chunk count and declared size. A later
        request that disagrees with either is rejected rather than silently
        using the original values. The filename is not checked: the first
        declared name and the destination derived from it are kept, and a
        later request naming a different file still adds to this session.

        Raises:
            SessionConflictError: chunk count or size differs from the first declaration
            SessionStateError: the session is already merging or merged
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = UploadSession(
                    session_id=session_id,
                    filename=filename,
                    total_chunks=total_chunks,
                    expected_size=size,
                    destination_path=self.upload_dir / sanitize_filename(filename),
                )
                self._sessions[session_id] = session
                logger.info(
                    f"Created upload session {session_id} for {filename} "
                    f"({total_chunks} chunks, {size} bytes)"
                )
                return _snapshot(session)

            if session.state != SessionState.UPLOADING:
                raise SessionStateError(session_id, session.state.value)
            if session.total_chunks != total_chunks:
                raise SessionConflictError(
                    f"Upload session {session_id} was declared with {session.total_chunks} chunks, "
                    f"got {total_chunks}"
                )
            if session.expected_size != size:
                raise SessionConflictError(
                    f"Upload session {session_id} was declared with size {session.expected_size}, "
                    f"got {size}"
                )
            return _snapshot(session)

    def _record(self, session_id: str, index: int) -> UploadSession:
        session = self._get(session_id)
        if session.state != SessionState.UPLOADING:
            raise SessionStateError(session_id, session.state.value)
        if not 0 <= index < session.total_chunks:
            raise ChunkIndexError(index, session.total_chunks)

        was_completed = session.completed
        if session.mark_arrived(index) and not was_completed:
            logger.info(f"All {session.total_chunks} chunks received for session {session_id}")
        return session

    def record_chunk_arrived(self, session_id: str, index: int) -> bool:
        """
        Mark chunk ``index`` as durably stored and return the completion flag.

        Call only after the chunk bytes have been written.
        """
        with self._lock:
            return self._record(session_id, index).completed

    def record_and_snapshot(self, session_id: str, index: int) -> SessionSnapshot:
        """Same as ``record_chunk_arrived`` but returns the state it produced."""
        with self._lock:
            return _snapshot(self._record(session_id, index))

    def get_status(self, session_id: str) -> SessionSnapshot:
        with self._lock:
            return _snapshot(self._get(session_id))

    def list_sessions(self, state: Optional[SessionState] = None) -> List[SessionSnapshot]:
        """Snapshots of all sessions, newest first, optionally filtered by state."""
        with self._lock:
            sessions = [
                s for s in self._sessions.values()
                if state is None or s.state == state
            ]
            sessions.sort(key=lambda s: s.created_at, reverse=True)
            return [_snapshot(s) for s in sessions]

    def begin_merge(self, session_id: str) -> SessionSnapshot:
        """
        Claim a completed session for merging.

        The completion check and the claim happen under the same lock as
        chunk arrival, so a merge never starts while the final bit is still
        being set, and a second merge of the same session is refused.
        """
        with self._lock:
            session = self._get(session_id)
            if session.state != SessionState.UPLOADING:
                raise SessionStateError(session_id, session.state.value)
            if not session.completed:
                raise UploadIncompleteError(session_id, session.missing_chunks())
            session.state = SessionState.MERGING
            return _snapshot(session)

    def mark_merged(self, session_id: str, destination_path: Path) -> SessionSnapshot:
        with self._lock:
            session = self._get(session_id)
            session.state = SessionState.MERGED
            session.destination_path = Path(destination_path)
            session.merged_at = datetime.now(timezone.utc)
            session.last_activity = session.merged_at
            return _snapshot(session)

    def abort_merge(self, session_id: str) -> None:
        """Release a merge claim after a failed merge so the session can be retried."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None and session.state == SessionState.MERGING:
                session.state = SessionState.UPLOADING

    def retire(self, session_id: str) -> SessionSnapshot:
        """
        Drop an uploading or merged session from the registry.

        Raises:
            SessionStateError: the session is being merged
        """
        with self._lock:
            session = self._get(session_id)
            if session.state == SessionState.MERGING:
                raise SessionStateError(session_id, session.state.value)
            del self._sessions[session_id]
            return _snapshot(session)

    def expire(
        self,
        idle_ttl: float,
        merged_ttl: float,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """
        Evict sessions idle for longer than ``idle_ttl`` seconds and merged
        sessions older than ``merged_ttl`` seconds. Sessions being merged are
        never evicted. Returns the evicted ids.
        """
        now = now or datetime.now(timezone.utc)
        idle_cutoff = now - timedelta(seconds=idle_ttl)
        merged_cutoff = now - timedelta(seconds=merged_ttl)

        with self._lock:
            expired = []
            for session_id, session in self._sessions.items():
                if session.state == SessionState.UPLOADING and session.last_activity < idle_cutoff:
                    expired.append(session_id)
                elif session.state == SessionState.MERGED and session.merged_at < merged_cutoff:
                    expired.append(session_id)
            for session_id in expired:
                del self._sessions[session_id]
            return expired

    def __len__(self):
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id):
        with self._lock:
            return session_id in self._sessions
