"""Chunked file upload server: upload large files in pieces and merge them on the server."""

__version__ = "1.0.0"
