"""
Merge engine: reassembles stored chunks into the final file.
"""
import logging
import os
from pathlib import Path
from typing import NamedTuple

from ..core.exceptions import ChunkStorageError, MergeError, SizeMismatchError
from ..schemas import SessionSnapshot
from .chunk_store import ChunkStore

logger = logging.getLogger(__name__)


class MergeResult(NamedTuple):
    path: Path
    size: int


class MergeEngine:
    """
    Concatenates chunks ``0..total_chunks-1`` in ascending order.

    Output goes to a staging file beside the destination and is promoted
    with an atomic rename only after every chunk was copied and the size
    checked. Chunks are deleted after promotion, so a failed merge leaves
    both the chunks and any previous destination file untouched.
    """

    def __init__(self, chunk_store: ChunkStore, buffer_size: int = 1024 * 1024):
        self.chunk_store = chunk_store
        self.buffer_size = buffer_size

    @staticmethod
    def staging_path(destination: Path, session_id: str) -> Path:
        return destination.with_name(f".{session_id}.part")

    @staticmethod
    def _discard(staging: Path) -> None:
        try:
            staging.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove staging file {staging}: {e}")

    def merge(self, session: SessionSnapshot) -> MergeResult:
        session_id = session.uuid
        destination = Path(session.path)
        staging = self.staging_path(destination, session_id)

        logger.info(f"Merging {session.total_chunks} chunks of session {session_id} into {destination}")
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            total = 0
            with open(staging, "wb") as outfile:
                for index in range(session.total_chunks):
                    with self.chunk_store.open_chunk(session_id, index) as infile:
                        copied = self._copy(infile, outfile)
                    logger.debug(f"Appended chunk {index} ({copied} bytes) for session {session_id}")
                    total += copied
                outfile.flush()
                os.fsync(outfile.fileno())

            if total != session.size:
                raise SizeMismatchError(session.size, total)

            os.replace(staging, destination)
        except (ChunkStorageError, SizeMismatchError):
            self._discard(staging)
            logger.error(f"Merge failed for session {session_id}, chunks kept for recovery")
            raise
        except OSError as e:
            self._discard(staging)
            logger.error(f"Merge failed for session {session_id}: {e}")
            raise MergeError(f"Failed to write {destination.name}: {e}") from e

        for index in range(session.total_chunks):
            self.chunk_store.delete_chunk(session_id, index)
        self.chunk_store.delete_session_area(session_id)

        logger.info(f"Merged session {session_id} into {destination} ({total} bytes)")
        return MergeResult(destination, total)

    def _copy(self, infile, outfile) -> int:
        copied = 0
        while True:
            data = infile.read(self.buffer_size)
            if not data:
                return copied
            outfile.write(data)
            copied += len(data)
