"""Tests for the upload service operations"""
import io
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from chunk_upload.core import (
    ChunkIndexError,
    ChunkStorageError,
    SessionConflictError,
    SessionNotFoundError,
    SessionStateError,
    UploadIncompleteError,
    ValidationError,
)
from chunk_upload.models import SessionState


def test_abc_scenario(service, ingest):
    snapshot = ingest("abc", 1, b"B")
    assert snapshot.uploaded == [False, True, False]
    assert snapshot.completed is False

    snapshot = ingest("abc", 0, b"A")
    assert snapshot.uploaded == [True, True, False]
    assert snapshot.completed is False

    snapshot = ingest("abc", 2, b"C")
    assert snapshot.uploaded == [True, True, True]
    assert snapshot.completed is True

    result = service.merge("abc")

    assert result.path.read_bytes() == b"ABC"
    assert result.size == 3
    assert service.chunk_store.list_chunks("abc") == []
    assert not service.chunk_store.session_dir("abc").exists()
    assert service.query_status("abc").state == SessionState.MERGED


def test_reingest_keeps_latest_payload(service, ingest):
    ingest("abc", 0, b"X", total_chunks=2, size=2)
    ingest("abc", 0, b"A", total_chunks=2, size=2)
    snapshot = ingest("abc", 1, b"B", total_chunks=2, size=2)

    assert snapshot.uploaded == [True, True]
    assert snapshot.received_chunks == 2
    assert service.merge("abc").path.read_bytes() == b"AB"


def test_duplicate_after_completion_keeps_completed(ingest):
    ingest("abc", 0, b"A", total_chunks=1, size=1)
    snapshot = ingest("abc", 0, b"Z", total_chunks=1, size=1)

    assert snapshot.completed is True


def test_out_of_range_index_is_not_stored(service, ingest):
    ingest("abc", 0, b"A")

    with pytest.raises(ChunkIndexError):
        ingest("abc", 5, b"F")

    snapshot = service.query_status("abc")
    assert snapshot.uploaded == [True, False, False]
    assert snapshot.completed is False
    assert service.chunk_store.list_chunks("abc") == [0]


def test_out_of_range_on_first_chunk_creates_nothing(service, ingest):
    with pytest.raises(ChunkIndexError):
        ingest("abc", 3, b"A")

    with pytest.raises(SessionNotFoundError):
        service.query_status("abc")


@pytest.mark.parametrize(
    "session_id,total_chunks,filename,size",
    [
        ("../escape", 3, "f.bin", 3),
        ("", 3, "f.bin", 3),
        ("abc", 0, "f.bin", 3),
        ("abc", 3, "..", 3),
        ("abc", 3, "f.bin", -1),
    ],
)
def test_invalid_parameters_are_rejected(service, session_id, total_chunks, filename, size):
    with pytest.raises(ValidationError):
        service.ingest_chunk(session_id, 0, total_chunks, filename, size, io.BytesIO(b"x"))

    assert len(service.registry) == 0


def test_chunk_count_limit(service):
    service.max_total_chunks = 10

    with pytest.raises(ValidationError):
        service.ingest_chunk("abc", 0, 11, "f.bin", 11, io.BytesIO(b"x"))


def test_mismatched_redeclaration(ingest):
    ingest("abc", 0, b"A")

    with pytest.raises(SessionConflictError):
        ingest("abc", 1, b"B", total_chunks=4)


def test_traversal_filename_stays_in_upload_dir(service, ingest, settings):
    ingest("abc", 0, b"A", total_chunks=1, filename="../../etc/passwd", size=1)

    result = service.merge("abc")

    assert result.path == Path(settings.UPLOAD_DIR) / "passwd"
    assert service.query_status("abc").filename == "../../etc/passwd"


def test_storage_failure_leaves_bitmap_untouched(service, ingest, monkeypatch):
    ingest("abc", 0, b"A")

    def fail(*args, **kwargs):
        raise ChunkStorageError("disk full")

    monkeypatch.setattr(service.chunk_store, "write_chunk", fail)

    with pytest.raises(ChunkStorageError):
        ingest("abc", 1, b"B")

    assert service.query_status("abc").uploaded == [True, False, False]


def test_unknown_session(service):
    with pytest.raises(SessionNotFoundError):
        service.query_status("nope")
    with pytest.raises(SessionNotFoundError):
        service.merge("nope")


def test_incomplete_merge_does_not_touch_destination(service, ingest):
    ingest("abc", 0, b"A")
    ingest("abc", 2, b"C")

    with pytest.raises(UploadIncompleteError):
        service.merge("abc")

    assert not Path(service.query_status("abc").path).exists()
    assert service.chunk_store.list_chunks("abc") == [0, 2]


def test_second_merge_is_refused(service, ingest):
    for index, payload in enumerate([b"A", b"B", b"C"]):
        ingest("abc", index, payload)
    service.merge("abc")

    with pytest.raises(SessionStateError):
        service.merge("abc")
    with pytest.raises(SessionStateError):
        ingest("abc", 0, b"A")


def test_failed_merge_can_be_retried(service, ingest):
    for index, payload in enumerate([b"A", b"B", b"C"]):
        ingest("abc", index, payload)
    service.chunk_store.delete_chunk("abc", 1)

    with pytest.raises(ChunkStorageError):
        service.merge("abc")
    assert service.query_status("abc").state == SessionState.UPLOADING

    ingest("abc", 1, b"B")
    assert service.merge("abc").path.read_bytes() == b"ABC"


def test_concurrent_ingest_from_threads(service):
    total = 40
    payloads = [bytes([65 + i % 26]) * (i + 1) for i in range(total)]
    size = sum(len(p) for p in payloads)
    errors = []

    def upload(indices):
        for index in indices:
            try:
                service.ingest_chunk("big", index, total, "big.bin", size, io.BytesIO(payloads[index]))
            except Exception as e:
                errors.append(e)

    threads = [threading.Thread(target=upload, args=(range(i, total, 4),)) for i in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert service.query_status("big").completed is True
    assert service.merge("big").path.read_bytes() == b"".join(payloads)


def test_cancel_removes_session_and_chunks(service, ingest):
    ingest("abc", 0, b"A")

    service.cancel("abc")

    assert not service.chunk_store.session_dir("abc").exists()
    with pytest.raises(SessionNotFoundError):
        service.query_status("abc")


def test_sweep_expires_idle_sessions(service, ingest):
    ingest("old", 0, b"A")
    ingest("fresh", 0, b"A")
    session = service.registry._sessions["old"]
    session.last_activity = datetime.now(timezone.utc) - timedelta(seconds=3600)

    expired = service.sweep()

    assert expired == ["old"]
    assert not service.chunk_store.session_dir("old").exists()
    assert service.chunk_store.list_chunks("fresh") == [0]


def test_merge_with_long_filename(service, ingest, settings):
    session_id = "0123456789abcdef0123456789abcdef"
    filename = "a" * 240 + ".bin"
    ingest(session_id, 0, b"A", total_chunks=1, filename=filename, size=1)

    result = service.merge(session_id)

    assert result.path == Path(settings.UPLOAD_DIR) / filename
    assert result.path.read_bytes() == b"A"
    assert service.query_status(session_id).state == SessionState.MERGED


def test_unexpected_merge_failure_releases_claim(service, ingest, monkeypatch):
    ingest("abc", 0, b"A", total_chunks=1, size=1)

    def explode(snapshot):
        raise RuntimeError("boom")

    monkeypatch.setattr(service.merge_engine, "merge", explode)

    with pytest.raises(RuntimeError):
        service.merge("abc")

    assert service.query_status("abc").state == SessionState.UPLOADING
    service.cancel("abc")


def test_cancel_during_chunk_write_leaves_no_chunks(service, ingest, monkeypatch):
    ingest("abc", 0, b"A")
    original_write = service.chunk_store.write_chunk

    def write_after_cancel(session_id, index, reader):
        service.cancel(session_id)
        return original_write(session_id, index, reader)

    monkeypatch.setattr(service.chunk_store, "write_chunk", write_after_cancel)

    with pytest.raises(SessionNotFoundError):
        ingest("abc", 1, b"B")

    assert "abc" not in service.registry
    assert service.chunk_store.list_chunks("abc") == []
    assert not service.chunk_store.session_dir("abc").exists()


def test_sweep_removes_orphaned_chunk_directories(service, ingest):
    ingest("live", 0, b"A")
    orphan = service.chunk_store.session_dir("orphan")
    orphan.mkdir(parents=True)
    (orphan / "0").write_bytes(b"left behind")
    service.orphan_grace = 0

    service.sweep()

    assert not orphan.exists()
    assert service.chunk_store.list_chunks("live") == [0]


def test_ingest_snapshot_comes_from_the_recording_call(service, ingest, monkeypatch):
    def no_second_lookup(session_id):
        raise AssertionError("status looked up separately")

    monkeypatch.setattr(service.registry, "get_status", no_second_lookup)

    snapshot = ingest("abc", 0, b"A")

    assert snapshot.uploaded == [True, False, False]


def test_redeclared_filename_keeps_first_declaration(service, ingest, settings):
    ingest("abc", 0, b"A", filename="first.bin")
    snapshot = ingest("abc", 1, b"B", filename="second.bin")

    assert snapshot.filename == "first.bin"
    assert snapshot.path == str(Path(settings.UPLOAD_DIR) / "first.bin")
