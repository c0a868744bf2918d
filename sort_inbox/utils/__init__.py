"""Utilities module for Sort Inbox."""

from .logging_config import setup_logging, get_logger, LoggingConfig, Timer
from .exceptions import (
    ErrorCode,
    SortInboxError,
    ConfigurationError,
    FileProcessingError,
    MoveFailureError,
    ClassificationError,
    MissingCredentialError,
    CredentialError,
    MalformedResponseError,
    InvalidDestinationError,
    ModelClientError,
    ModelTimeoutError,
    UpstreamError,
    ModelTransportError,
    RunInProgressError,
)
from .notifications import DesktopNotifier, NotificationConfig

__all__ = [
    "setup_logging",
    "get_logger",
    "LoggingConfig",
    "Timer",
    "ErrorCode",
    "SortInboxError",
    "ConfigurationError",
    "FileProcessingError",
    "MoveFailureError",
    "ClassificationError",
    "MissingCredentialError",
    "CredentialError",
    "MalformedResponseError",
    "InvalidDestinationError",
    "ModelClientError",
    "ModelTimeoutError",
    "UpstreamError",
    "ModelTransportError",
    "RunInProgressError",
    "DesktopNotifier",
    "NotificationConfig",
]
