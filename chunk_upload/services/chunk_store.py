"""
Filesystem chunk store.

Layout: ``<chunks_dir>/<session_id>/<index>``, one file per chunk.
"""
import logging
import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import BinaryIO, List

from ..core.exceptions import ChunkStorageError

logger = logging.getLogger(__name__)


class ChunkStore:
    """
    Stores chunk payloads addressed by (session id, chunk index).

    Writes go to a temporary file in the session directory and are renamed
    into place, so a chunk file is either absent or complete. Concurrent
    writes to the same index resolve to whichever rename lands last.
    """

    def __init__(self, chunks_dir: Path, buffer_size: int = 1024 * 1024):
        self.chunks_dir = Path(chunks_dir)
        self.buffer_size = buffer_size
        self.chunks_dir.mkdir(parents=True, exist_ok=True)

    def session_dir(self, session_id: str) -> Path:
        return self.chunks_dir / session_id

    def chunk_path(self, session_id: str, index: int) -> Path:
        return self.session_dir(session_id) / str(index)

    def write_chunk(self, session_id: str, index: int, reader: BinaryIO) -> int:
        """
        Copy ``reader`` into the chunk slot, replacing any earlier payload.

        Returns:
            Number of bytes written

        Raises:
            ChunkStorageError: on any I/O failure; no partial chunk is left behind
        """
        session_dir = self.session_dir(session_id)
        tmp_path = None
        try:
            session_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=session_dir, prefix=f".{index}.", suffix=".tmp", delete=False
            ) as tmp:
                tmp_path = Path(tmp.name)
                written = 0
                while True:
                    data = reader.read(self.buffer_size)
                    if not data:
                        break
                    tmp.write(data)
                    written += len(data)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_path, self.chunk_path(session_id, index))
        except OSError as e:
            logger.error(f"Failed to write chunk {index} for session {session_id}: {e}")
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            raise ChunkStorageError(f"Failed to store chunk {index}: {e}") from e

        logger.debug(f"Stored chunk {index} for session {session_id} ({written} bytes)")
        return written

    def open_chunk(self, session_id: str, index: int) -> BinaryIO:
        """Open a stored chunk for reading. The caller closes the handle."""
        try:
            return open(self.chunk_path(session_id, index), "rb")
        except OSError as e:
            raise ChunkStorageError(f"Chunk {index} of session {session_id} unavailable: {e}") from e

    def chunk_exists(self, session_id: str, index: int) -> bool:
        return self.chunk_path(session_id, index).is_file()

    def list_chunks(self, session_id: str) -> List[int]:
        """Indices of the chunks currently stored for a session, ascending."""
        session_dir = self.session_dir(session_id)
        if not session_dir.is_dir():
            return []
        return sorted(int(p.name) for p in session_dir.iterdir() if p.name.isdigit())

    def list_session_areas(self, older_than: float = 0) -> List[str]:
        """Session ids that have a chunk directory untouched for ``older_than`` seconds."""
        cutoff = time.time() - older_than
        areas = []
        for entry in self.chunks_dir.iterdir():
            try:
                if entry.is_dir() and entry.stat().st_mtime <= cutoff:
                    areas.append(entry.name)
            except OSError:
                continue
        return sorted(areas)

    def delete_chunk(self, session_id: str, index: int) -> None:
        try:
            self.chunk_path(session_id, index).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not delete chunk {index} of session {session_id}: {e}")

    def prune_session_area(self, session_id: str) -> None:
        """Remove the session directory only if no chunk is left in it."""
        try:
            self.session_dir(session_id).rmdir()
        except OSError:
            pass  # Missing or still holds chunks

    def delete_session_area(self, session_id: str) -> None:
        session_dir = self.session_dir(session_id)
        if not session_dir.exists():
            return
        try:
            shutil.rmtree(session_dir)
            logger.info(f"Removed chunk directory for session {session_id}")
        except OSError as e:
            logger.warning(f"Could not remove chunk directory for session {session_id}: {e}")
