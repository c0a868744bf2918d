"""
Custom Exceptions
=================

Defines custom exception classes for Sort Inbox.
All exceptions include error codes for programmatic handling.
"""

from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """Error codes for programmatic error handling."""

    # General errors (1000-1099)
    UNKNOWN_ERROR = 1000
    CONFIGURATION_ERROR = 1001
    FILE_NOT_FOUND = 1002
    PERMISSION_DENIED = 1003

    # File errors (1100-1199)
    READ_FAILED = 1100
    MOVE_FAILED = 1101
    FOLDER_CREATE_FAILED = 1102

    # Classification errors (1200-1299)
    CLASSIFICATION_FAILED = 1200
    MISSING_CREDENTIAL = 1201
    INVALID_CREDENTIAL = 1202
    MALFORMED_RESPONSE = 1203
    INVALID_DESTINATION = 1204

    # Model service errors (1300-1399)
    MODEL_TIMEOUT = 1300
    UPSTREAM_ERROR = 1301
    TRANSPORT_ERROR = 1302

    # Run errors (1400-1499)
    RUN_IN_PROGRESS = 1400


class SortInboxError(Exception):
    """Base exception for all Sort Inbox errors.

    Attributes:
        message: Human-readable error message.
        error_code: Programmatic error code.
        details: Additional error context.
        cause: Original exception that caused this error.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Optional[dict] = None,
        cause: Optional[Exception] = None
    ):
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Programmatic error code.
            details: Additional context as key-value pairs.
            cause: Original exception if wrapping another error.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        """Return a formatted error string."""
        result = f"[{self.error_code.name}] {self.message}"
        if self.details:
            result += f" | Details: {self.details}"
        if self.cause:
            result += f" | Caused by: {type(self.cause).__name__}: {self.cause}"
        return result

    def to_dict(self) -> dict:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "error_code": self.error_code.value,
            "error_name": self.error_code.name,
            "details": self.details,
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(SortInboxError):
    """Raised when there's a configuration problem.

    Examples:
        - Invalid configuration file format
        - Negative auto-run interval
        - Non-positive request timeout
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type
        super().__init__(
            message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            details=details,
            **kwargs
        )


class FileProcessingError(SortInboxError):
    """Raised when a vault file operation fails.

    Examples:
        - Note cannot be read
        - Note disappeared before it could be moved
    """

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.READ_FAILED,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if file_path:
            details["file_path"] = file_path
        super().__init__(
            message,
            error_code=error_code,
            details=details,
            **kwargs
        )


class MoveFailureError(FileProcessingError):
    """Raised when a destination folder cannot be created or a note cannot be moved.

    The note stays at its original location.
    """

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        destination: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.MOVE_FAILED,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if destination:
            details["destination"] = destination
        super().__init__(
            message,
            file_path=file_path,
            error_code=error_code,
            details=details,
            **kwargs
        )


class ClassificationError(SortInboxError):
    """Raised when a note cannot be classified.

    Examples:
        - No API key configured
        - Model output could not be interpreted
    """

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.CLASSIFICATION_FAILED,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if file_path:
            details["file_path"] = file_path
        super().__init__(
            message,
            error_code=error_code,
            details=details,
            **kwargs
        )


class MissingCredentialError(ClassificationError):
    """Raised when a classification call is attempted without an API key."""

    def __init__(self, message: str = "Gemini API key is not configured", **kwargs):
        super().__init__(message, error_code=ErrorCode.MISSING_CREDENTIAL, **kwargs)


class CredentialError(ClassificationError):
    """Raised when a credential cannot be verified (e.g. it is empty)."""

    def __init__(self, message: str = "API key is empty", **kwargs):
        super().__init__(message, error_code=ErrorCode.INVALID_CREDENTIAL, **kwargs)


class MalformedResponseError(ClassificationError):
    """Model output has no usable structure.

    Never escapes the response parser; it degrades to unclassified decisions.
    """

    def __init__(self, message: str, raw_text: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if raw_text is not None:
            details["raw_text"] = raw_text[:200]
        super().__init__(
            message,
            error_code=ErrorCode.MALFORMED_RESPONSE,
            details=details,
            **kwargs
        )


class InvalidDestinationError(ClassificationError):
    """Model proposed a folder outside the configured folder set.

    Never escapes the response parser; the decision becomes unclassified.
    """

    def __init__(self, folder: str, **kwargs):
        details = kwargs.pop("details", {})
        details["folder"] = folder
        super().__init__(
            f"Folder is not in the configured folder list: {folder!r}",
            error_code=ErrorCode.INVALID_DESTINATION,
            details=details,
            **kwargs
        )


class ModelClientError(SortInboxError):
    """Base class for failures talking to the remote model service."""


class ModelTimeoutError(ModelClientError):
    """Raised when a model request exceeds its time budget."""

    def __init__(self, timeout_ms: int, **kwargs):
        self.timeout_ms = timeout_ms
        super().__init__(
            f"API request timed out after {timeout_ms}ms",
            error_code=ErrorCode.MODEL_TIMEOUT,
            details={"timeout_ms": timeout_ms},
            **kwargs
        )


class UpstreamError(ModelClientError):
    """Raised when the model service answers with a non-2xx status."""

    def __init__(self, status_code: int, body: str = "", **kwargs):
        self.status_code = status_code
        self.body = body
        super().__init__(
            f"API request failed with status {status_code}: {body[:200]}",
            error_code=ErrorCode.UPSTREAM_ERROR,
            details={"status_code": status_code},
            **kwargs
        )


class ModelTransportError(ModelClientError):
    """Raised on connection-level failures (DNS, refused, reset, ...)."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.TRANSPORT_ERROR,
            **kwargs
        )


class RunInProgressError(SortInboxError):
    """Raised when a bulk run is requested while another one is active."""

    def __init__(self, message: str = "A classification run is already in progress", **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.RUN_IN_PROGRESS,
            **kwargs
        )
