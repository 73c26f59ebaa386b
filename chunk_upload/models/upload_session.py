"""In-memory upload session state."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional


class SessionState(str, Enum):
    """Lifecycle of an upload session."""

    UPLOADING = "uploading"  # Accepting chunks
    MERGING = "merging"  # Claimed by a merge, chunks are being consumed
    MERGED = "merged"  # Artifact written, chunks released


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class UploadSession:
    """
    Mutable session state owned by the registry.

    Only the registry touches instances of this class, and only while
    holding its lock. Everything else works with snapshots.
    """

    session_id: str
    filename: str
    total_chunks: int
    expected_size: int
    destination_path: Path
    chunk_arrived: List[bool] = field(default_factory=list)
    completed: bool = False
    state: SessionState = SessionState.UPLOADING
    created_at: datetime = field(default_factory=_utcnow)
    last_activity: datetime = field(default_factory=_utcnow)
    merged_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.chunk_arrived:
            self.chunk_arrived = [False] * self.total_chunks

    def mark_arrived(self, index: int) -> bool:
        """Flip the arrival flag for ``index`` and refresh the completion cache."""
        self.chunk_arrived[index] = True
        self.last_activity = _utcnow()
        if not self.completed:
            self.completed = all(self.chunk_arrived)
        return self.completed

    def missing_chunks(self) -> List[int]:
        return [i for i, arrived in enumerate(self.chunk_arrived) if not arrived]

    def received_count(self) -> int:
        return sum(self.chunk_arrived)

    def __repr__(self):
        return (
            f"<UploadSession(session_id={self.session_id}, filename={self.filename}, "
            f"chunks={self.received_count()}/{self.total_chunks}, state={self.state.value})>"
        )
