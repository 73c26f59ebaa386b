"""
Configuration settings for the chunked upload server
"""
import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings"""

    # Storage
    CHUNKS_DIR: str = os.getenv("CHUNKS_DIR", "/tmp/chunk-upload/chunks")
    UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "/tmp/chunk-upload/uploads")
    COPY_BUFFER_SIZE: int = int(os.getenv("COPY_BUFFER_SIZE", str(1024 * 1024)))

    # Sessions
    MAX_TOTAL_CHUNKS: int = int(os.getenv("MAX_TOTAL_CHUNKS", "100000"))
    SESSION_IDLE_TTL_SECONDS: float = float(os.getenv("SESSION_IDLE_TTL_SECONDS", "86400"))
    MERGED_SESSION_TTL_SECONDS: float = float(os.getenv("MERGED_SESSION_TTL_SECONDS", "3600"))
    SWEEP_INTERVAL_SECONDS: float = float(os.getenv("SWEEP_INTERVAL_SECONDS", "300"))

    # Server
    SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
    SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8999"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Application
    APP_TITLE: str = "Chunked Upload Server"
    APP_DESCRIPTION: str = "Upload large files as independent chunks and merge them on the server"
    APP_VERSION: str = "1.0.0"

    def __init__(self, **overrides):
        for key, value in overrides.items():
            if not hasattr(type(self), key):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(self, key, value)


settings = Settings()
