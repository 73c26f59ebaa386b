"""Chunked upload client with parallel workers and resume support."""
import argparse
import logging
import math
import os
import sys
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import List, Optional

import requests

logger = logging.getLogger(__name__)

API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8999")
CHUNK_SIZE = 5 * 1024 * 1024  # 5MB
MAX_WORKERS = 4  # Parallel upload threads


class UploadFailedError(Exception):
    """Raised when chunks could not be uploaded or the merge was refused"""

    def __init__(self, message, session_id, failed_chunks=None):
        super().__init__(message)
        self.session_id = session_id
        self.failed_chunks = failed_chunks or []


class ChunkedUploader:
    """Client that splits a file into chunks and uploads them to the server."""

    def __init__(
        self,
        api_url: str = API_BASE_URL,
        chunk_size: int = CHUNK_SIZE,
        max_workers: int = MAX_WORKERS,
        session: Optional[requests.Session] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.chunk_size = chunk_size
        self.max_workers = max_workers
        self.session = session or requests.Session()

    def total_chunks(self, file_size: int) -> int:
        # An empty file is still uploaded as one empty chunk
        return max(1, math.ceil(file_size / self.chunk_size))

    def get_status(self, session_id: str) -> Optional[dict]:
        """Get upload status, or None if the server does not know the session."""
        response = self.session.get(f"{self.api_url}/api/status", params={"uuid": session_id})
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    def upload_chunk(
        self,
        session_id: str,
        index: int,
        total_chunks: int,
        filename: str,
        file_size: int,
        chunk_data: bytes,
    ) -> dict:
        """Upload a single chunk and return the session state reported by the server."""
        response = self.session.post(
            f"{self.api_url}/api/upload",
            files={"file": (f"{filename}.{index}", chunk_data, "application/octet-stream")},
            data={
                "uuid": session_id,
                "chunkIndex": str(index),
                "totalChunks": str(total_chunks),
                "filename": filename,
                "fileSize": str(file_size),
            },
        )
        response.raise_for_status()
        return response.json()

    def merge(self, session_id: str) -> dict:
        """Ask the server to assemble the uploaded chunks."""
        response = self.session.post(f"{self.api_url}/api/merge", data={"uuid": session_id})
        response.raise_for_status()
        return response.json()

    def cancel(self, session_id: str) -> dict:
        response = self.session.delete(f"{self.api_url}/api/upload/{session_id}")
        response.raise_for_status()
        return response.json()

    def _read_chunk(self, file_path: Path, index: int) -> bytes:
        with open(file_path, "rb") as f:
            f.seek(index * self.chunk_size)
            return f.read(self.chunk_size)

    def _upload_index(
        self, file_path: Path, session_id: str, index: int, total_chunks: int, file_size: int
    ) -> dict:
        # Read inside the worker so only in-flight chunks are held in memory
        chunk_data = self._read_chunk(file_path, index)
        return self.upload_chunk(session_id, index, total_chunks, file_path.name, file_size, chunk_data)

    def upload_file(self, file_path: str, session_id: Optional[str] = None) -> dict:
        """
        Upload a file chunk by chunk, then merge it.

        If session_id refers to a session the server already knows, chunks
        it reports as uploaded are skipped. Otherwise a new session is
        started under that id (or a generated one).

        Returns:
            The server's merge response

        Raises:
            UploadFailedError: if any chunk failed; the upload can be resumed
                with the session id carried by the exception
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        file_size = file_path.stat().st_size
        filename = file_path.name
        total_chunks = self.total_chunks(file_size)
        session_id = session_id or uuid.uuid4().hex

        uploaded = set()
        status = self.get_status(session_id)
        if status:
            uploaded = {i for i, done in enumerate(status["uploaded"]) if done}
            logger.info(f"Resuming session {session_id}: {len(uploaded)}/{total_chunks} chunks already uploaded")

        pending: List[int] = [i for i in range(total_chunks) if i not in uploaded]
        logger.info(
            f"Uploading {filename} ({file_size} bytes) as {len(pending)} chunk(s) "
            f"using {self.max_workers} worker(s), session {session_id}"
        )
        start_time = time.time()

        failed = []
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                executor.submit(
                    self._upload_index, file_path, session_id, index, total_chunks, file_size
                ): index
                for index in pending
            }
            for future in as_completed(futures):
                index = futures[future]
                try:
                    state = future.result()
                    logger.info(f"Chunk {index + 1}/{total_chunks} uploaded ({state['progress_percent']:.1f}%)")
                except requests.RequestException as e:
                    logger.warning(f"Chunk {index} failed: {e}")
                    failed.append(index)

        if failed:
            raise UploadFailedError(
                f"{len(failed)} chunk(s) failed, resume with session {session_id}",
                session_id,
                sorted(failed),
            )

        result = self.merge(session_id)
        elapsed = time.time() - start_time
        logger.info(f"Upload of {filename} completed in {elapsed:.2f}s, stored at {result['path']}")
        return result


def main(argv=None):
    """CLI for the chunked uploader."""
    parser = argparse.ArgumentParser(description="Upload a file to the chunked upload server")
    parser.add_argument("file", help="Path of the file to upload")
    parser.add_argument("--resume", metavar="SESSION_ID", help="Resume an earlier upload session")
    parser.add_argument("--url", default=API_BASE_URL, help="Server base URL")
    parser.add_argument("--chunk-size", type=int, default=CHUNK_SIZE, help="Chunk size in bytes")
    parser.add_argument("--workers", type=int, default=MAX_WORKERS, help="Parallel upload threads")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    uploader = ChunkedUploader(api_url=args.url, chunk_size=args.chunk_size, max_workers=args.workers)
    try:
        result = uploader.upload_file(args.file, session_id=args.resume)
    except UploadFailedError as e:
        logger.error(f"Upload incomplete: {e}")
        logger.error(f"Resume with: chunk-upload-client {args.file} --resume {e.session_id}")
        return 1
    except (OSError, requests.RequestException) as e:
        logger.error(f"Upload failed: {e}")
        return 1

    print(result["path"])
    return 0


if __name__ == "__main__":
    sys.exit(main())
