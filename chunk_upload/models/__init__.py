"""Models module exports"""
from .upload_session import SessionState, UploadSession

__all__ = ["SessionState", "UploadSession"]
