"""
Error types raised by the upload core.

Every error carries a machine-readable code and the HTTP status the
transport layer should answer with.
"""


class UploadError(Exception):
    """Base class for all upload errors"""

    def __init__(self, message, code="UPLOAD_ERROR", status_code=500):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


class ValidationError(UploadError):
    """Malformed or unsafe request parameters (400)"""

    def __init__(self, message, code="VALIDATION_ERROR"):
        super().__init__(message, code, 400)


class ChunkIndexError(ValidationError):
    """Chunk index outside [0, total_chunks) (400)"""

    def __init__(self, index, total_chunks):
        super().__init__(
            f"Chunk index {index} out of range for {total_chunks} chunks",
            "CHUNK_INDEX_OUT_OF_RANGE",
        )
        self.index = index
        self.total_chunks = total_chunks


class SessionNotFoundError(UploadError):
    """Unknown session id (404)"""

    def __init__(self, session_id):
        super().__init__(f"Upload session {session_id} not found", "NOT_FOUND", 404)
        self.session_id = session_id


class SessionConflictError(UploadError):
    """Session re-declared with a different shape (409)"""

    def __init__(self, message):
        super().__init__(message, "SESSION_CONFLICT", 409)


class UploadIncompleteError(UploadError):
    """Merge requested before every chunk arrived (409)"""

    def __init__(self, session_id, missing):
        super().__init__(
            f"Upload session {session_id} is not complete, missing chunks: {missing}",
            "UPLOAD_INCOMPLETE",
            409,
        )
        self.session_id = session_id
        self.missing = missing


class SessionStateError(UploadError):
    """Operation not allowed in the session's current state (409)"""

    def __init__(self, session_id, state):
        super().__init__(f"Upload session {session_id} is {state}", "INVALID_STATE", 409)
        self.session_id = session_id
        self.state = state


class SizeMismatchError(UploadError):
    """Merged byte count differs from the declared file size (422)"""

    def __init__(self, expected, actual):
        super().__init__(
            f"Merged size {actual} does not match declared size {expected}",
            "SIZE_MISMATCH",
            422,
        )
        self.expected = expected
        self.actual = actual


class ChunkStorageError(UploadError):
    """Chunk could not be written or read (500)"""

    def __init__(self, message):
        super().__init__(message, "STORAGE_ERROR", 500)


class MergeError(UploadError):
    """Merged artifact could not be produced (500)"""

    def __init__(self, message):
        super().__init__(message, "MERGE_FAILED", 500)
