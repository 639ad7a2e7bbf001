"""Domain error definitions and the backend error classifier for SquirrelUp.

Every failure surfaced by a storage backend operation is one of the
``BackendError`` subclasses below. Transport and service errors raised by
aiobotocore/botocore are mapped onto this small taxonomy by ``classify()``
so callers can match on domain errors instead of S3 error codes.
"""

import asyncio

from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    NoCredentialsError,
    NoRegionError,
    PartialCredentialsError,
    ReadTimeoutError,
)

# Stable error strings, matched by exact text.
ERR_FILE_NOT_FOUND = "file not found"
ERR_ACCESS_DENIED = "access denied"
ERR_INVALID_CONFIG = "invalid backend configuration"
ERR_OPERATION_TIMEOUT = "operation timeout"
ERR_INVALID_FILE_INFO = "invalid file info"
ERR_MISSING_UPLOAD_ID = "multipart upload failed: no upload id found in server response"


class BackendError(Exception):
    """Base class of all errors raised by storage backends.

    Attributes:
        message: Human-readable error description, also ``str(error)``.
    """

    default_message = "backend error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class FileNotFound(BackendError):
    """The addressed object or bucket does not exist."""

    default_message = ERR_FILE_NOT_FOUND


class AccessDenied(BackendError):
    """The service refused the request for authorization reasons."""

    default_message = ERR_ACCESS_DENIED


class InvalidConfig(BackendError):
    """Credentials or region are missing or rejected by the service."""

    default_message = ERR_INVALID_CONFIG


class OperationTimeout(BackendError):
    """A transient timeout; the operation may be retried."""

    default_message = ERR_OPERATION_TIMEOUT


class UnknownBackendError(BackendError):
    """Any failure the classifier does not recognize.

    Attributes:
        code: The original service error code (or exception class name).
        detail: The original error message.
    """

    def __init__(self, code: str, detail: str) -> None:
        self.code = code
        self.detail = detail
        super().__init__(f"unknown B2 error ({code}: {detail}).")


class InvalidFileInfo(BackendError):
    """The service reported object metadata that cannot be valid."""

    default_message = ERR_INVALID_FILE_INFO


class MissingUploadId(BackendError):
    """CreateMultipartUpload succeeded without returning an upload id."""

    default_message = ERR_MISSING_UPLOAD_ID


# -- Classification ------------------------------------------------------------

_NOT_FOUND_CODES = frozenset({"NotFound", "404", "NoSuchBucket", "NoSuchKey", "NoSuchVersion"})
_ACCESS_DENIED_CODES = frozenset({"AccessDenied", "403", "Forbidden"})
_INVALID_CONFIG_CODES = frozenset(
    {
        "InvalidAccessKeyId",
        "SignatureDoesNotMatch",
        "AuthorizationHeaderMalformed",
        "InvalidRegion",
    }
)
_TIMEOUT_CODES = frozenset({"RequestTimeout"})


def _client_error_code(exc: ClientError) -> tuple[str, str]:
    error = exc.response.get("Error", {})
    return str(error.get("Code", "")), str(error.get("Message", ""))


def classify(exc: BaseException) -> BackendError:
    """Map a transport or service error onto the domain error taxonomy.

    The mapping is deterministic and total: every input yields exactly one
    ``BackendError``. Errors that are already classified are returned as is.

    Args:
        exc: The exception raised by an S3 client call.

    Returns:
        The matching domain error. The original exception is attached as
        ``__cause__``.
    """
    if isinstance(exc, BackendError):
        return exc

    if isinstance(exc, ClientError):
        code, message = _client_error_code(exc)
        if code in _NOT_FOUND_CODES:
            result: BackendError = FileNotFound()
        elif code in _ACCESS_DENIED_CODES:
            result = AccessDenied()
        elif code in _INVALID_CONFIG_CODES:
            result = InvalidConfig()
        elif code in _TIMEOUT_CODES:
            result = OperationTimeout()
        else:
            result = UnknownBackendError(code, message)
    elif isinstance(exc, (NoRegionError, NoCredentialsError, PartialCredentialsError)):
        result = InvalidConfig()
    elif isinstance(exc, (ConnectTimeoutError, ReadTimeoutError, asyncio.TimeoutError)):
        result = OperationTimeout()
    else:
        result = UnknownBackendError(type(exc).__name__, str(exc))

    result.__cause__ = exc
    return result
