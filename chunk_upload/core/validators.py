"""
Validation for client-supplied identifiers and file names
"""
import os
import re

from .exceptions import ValidationError

_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")
_UNSAFE_CHARS_RE = re.compile(r'[<>:"|?*\x00-\x1f]')
MAX_FILENAME_BYTES = 255


def validate_session_id(session_id: str) -> str:
    """Session ids name a directory on disk, so only a safe alphabet is accepted."""
    if not session_id or not _SESSION_ID_RE.match(session_id):
        raise ValidationError(f"Invalid session id: {session_id!r}")
    return session_id


def sanitize_filename(filename: str) -> str:
    """
    Reduce a client-declared filename to a single safe path component.

    Directory parts (either separator) are dropped, control and reserved
    characters are stripped and leading dots removed so the result can
    never escape the upload directory or produce a hidden file.

    Raises:
        ValidationError: if nothing usable is left
    """
    if filename is None:
        raise ValidationError("Missing filename")

    name = filename.replace("\\", "/")
    name = os.path.basename(name)
    name = _UNSAFE_CHARS_RE.sub("", name).strip().lstrip(".")

    # Filesystems limit a path component in bytes, not characters
    if len(name.encode("utf-8")) > MAX_FILENAME_BYTES:
        stem, ext = os.path.splitext(name)
        ext_bytes = ext.encode("utf-8")[:MAX_FILENAME_BYTES // 2]
        room = MAX_FILENAME_BYTES - len(ext_bytes)
        stem_bytes = stem.encode("utf-8")[:room]
        name = (stem_bytes + ext_bytes).decode("utf-8", errors="ignore")

    if not name:
        raise ValidationError(f"Invalid filename: {filename!r}")
    return name
