"""Error taxonomy shared by ingestion and queries."""

from enum import Enum


class ErrorCode(str, Enum):
    VALIDATION_FAILED = "VALIDATION_FAILED"
    AUTH_DENIED = "AUTH_DENIED"
    NOT_FOUND = "NOT_FOUND"
    STORAGE_FAILURE = "STORAGE_FAILURE"


class VitalsError(Exception):
    """Base class for errors reported to callers."""

    code: ErrorCode = ErrorCode.STORAGE_FAILURE
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(VitalsError):
    """Missing or malformed required field."""

    code = ErrorCode.VALIDATION_FAILED
    status_code = 400


class AuthDenied(VitalsError):
    """Missing or invalid credential or API key."""

    code = ErrorCode.AUTH_DENIED
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class NotFound(VitalsError):
    """No record for the given patient identifier."""

    code = ErrorCode.NOT_FOUND
    status_code = 404

    def __init__(self, message: str = "Not found"):
        super().__init__(message)


class StorageFailure(VitalsError):
    """Backing store unreachable, timed out, or rejected a write.

    The caller may resubmit; nothing is retried here.
    """

    code = ErrorCode.STORAGE_FAILURE
    status_code = 500
    retryable = True
