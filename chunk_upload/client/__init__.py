"""Client module exports"""
from .uploader import ChunkedUploader, UploadFailedError

__all__ = ["ChunkedUploader", "UploadFailedError"]
