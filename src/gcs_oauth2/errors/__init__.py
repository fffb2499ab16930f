"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- CredentialsError hierarchy for typed exceptions
- Classification utilities for error handling
"""

from gcs_oauth2.errors.exceptions import (
    # Enums
    ErrorCategory,
    # Base class
    CredentialsError,
    # Resolution errors
    ConfigurationError,
    UnsupportedCredentialTypeError,
    CredentialsFormatError,
    CredentialsNotFoundError,
    # Network errors
    TransportError,
    RequestTimeoutError,
    ProtocolError,
    # Classification utilities
    classify_http_status,
    classify_exception,
    is_transient_error,
    is_retryable_error,
)

__all__ = [
    # Enums
    "ErrorCategory",
    # Base class
    "CredentialsError",
    # Resolution errors
    "ConfigurationError",
    "UnsupportedCredentialTypeError",
    "CredentialsFormatError",
    "CredentialsNotFoundError",
    # Network errors
    "TransportError",
    "RequestTimeoutError",
    "ProtocolError",
    # Classification utilities
    "classify_http_status",
    "classify_exception",
    "is_transient_error",
    "is_retryable_error",
]
