"""
Exception types and error classification for credential resolution.

Provides:
- ErrorCategory enum for retry decisions
- Typed exception hierarchy for credential and token errors
- Error classification utilities
"""

from enum import Enum
from typing import Iterable, Optional, Tuple


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that may succeed on a later attempt
                   (e.g., connection refused, timeouts, 429/503 responses)
        AUTH: The token endpoint rejected the credential material
              (e.g., 401 responses, revoked refresh tokens)
        PERMANENT: Failures that will not succeed on retry
                   (e.g., malformed credential files, unsupported types)
        UNKNOWN: Unclassified errors
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class CredentialsError(Exception):
    """
    Base exception for all credential errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        context: Optional[dict] = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Whether a later attempt of the same operation may succeed."""
        return self.category in (ErrorCategory.TRANSIENT, ErrorCategory.UNKNOWN)

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Configuration / Resolution Errors (Permanent)
# =============================================================================


class ConfigurationError(CredentialsError):
    """Explicitly configured credential source is unusable."""

    category = ErrorCategory.PERMANENT


class UnsupportedCredentialTypeError(ConfigurationError):
    """Credentials file declares a ``type`` this library cannot handle."""

    def __init__(self, path: str, credential_type: str):
        message = (
            f"Unsupported credential type ({credential_type}) when reading "
            f"Application Default Credentials file from {path}."
        )
        super().__init__(
            message, context={"path": path, "credential_type": credential_type}
        )
        self.path = path
        self.credential_type = credential_type


class CredentialsFormatError(CredentialsError):
    """Credential content is malformed or missing required fields."""

    category = ErrorCategory.PERMANENT

    def __init__(
        self,
        message: str,
        source: str,
        missing_fields: Iterable[str] = (),
        cause: Optional[Exception] = None,
    ):
        self.source = source
        self.missing_fields: Tuple[str, ...] = tuple(missing_fields)
        super().__init__(
            message,
            cause=cause,
            context={"source": source, "missing_fields": list(self.missing_fields)},
        )


class CredentialsNotFoundError(CredentialsError):
    """No credential source applied."""

    category = ErrorCategory.PERMANENT


# =============================================================================
# Network Errors (Transient)
# =============================================================================


class TransportError(CredentialsError):
    """Request never produced an HTTP response (connect, DNS, TLS)."""

    category = ErrorCategory.TRANSIENT


class RequestTimeoutError(TransportError):
    """Request did not complete within the allotted time."""

    pass


# =============================================================================
# Protocol Errors
# =============================================================================


class ProtocolError(CredentialsError):
    """
    Well-formed HTTP response that cannot be turned into a token or metadata.

    The raw response body is embedded verbatim in the message so failures
    against a live endpoint can be diagnosed from the error alone.
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        payload: str,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            cause=cause,
            context={"http_status": status_code},
        )
        self.status_code = status_code
        self.payload = payload
        self.category = _protocol_category(status_code)


def _protocol_category(status_code: int) -> ErrorCategory:
    category = classify_http_status(status_code)
    if category == ErrorCategory.UNKNOWN:
        # 2xx with an unusable body: the endpoint will keep answering the same
        return ErrorCategory.PERMANENT
    return category


# =============================================================================
# Error Classification Utilities
# =============================================================================


def classify_http_status(status_code: int) -> ErrorCategory:
    """
    Classify HTTP status code into error category.

    Args:
        status_code: HTTP response status

    Returns:
        Appropriate ErrorCategory
    """
    if 200 <= status_code < 300:
        return ErrorCategory.UNKNOWN  # Not an error

    if status_code == 401:
        return ErrorCategory.AUTH

    if status_code in (408, 429):
        return ErrorCategory.TRANSIENT

    if 400 <= status_code < 500:
        return ErrorCategory.PERMANENT

    if status_code >= 500:
        return ErrorCategory.TRANSIENT

    return ErrorCategory.UNKNOWN


def classify_exception(exc: Exception) -> ErrorCategory:
    """
    Classify an exception into error category.

    Args:
        exc: Exception to classify

    Returns:
        Appropriate ErrorCategory
    """
    if isinstance(exc, CredentialsError):
        return exc.category

    exc_type = type(exc).__name__.lower()
    exc_str = str(exc).lower()

    connection_markers = (
        "connectionerror",
        "connection refused",
        "connection reset",
        "connection aborted",
        "no route to host",
        "network unreachable",
        "name resolution",
        "broken pipe",
    )
    if any(m in exc_type or m in exc_str for m in connection_markers):
        return ErrorCategory.TRANSIENT

    if "timeout" in exc_type or "timed out" in exc_str:
        return ErrorCategory.TRANSIENT

    if isinstance(exc, (ValueError, KeyError, TypeError)):
        return ErrorCategory.PERMANENT

    return ErrorCategory.UNKNOWN


def is_transient_error(exc: Exception) -> bool:
    """Check whether an exception is transient."""
    return classify_exception(exc) == ErrorCategory.TRANSIENT


def is_retryable_error(exc: Exception) -> bool:
    """Check whether the failed operation is worth another attempt."""
    return classify_exception(exc) in (
        ErrorCategory.TRANSIENT,
        ErrorCategory.UNKNOWN,
    )
