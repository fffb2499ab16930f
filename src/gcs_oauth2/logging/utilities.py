"""Helpers for structured log records."""

import logging
from typing import Any, Optional

from gcs_oauth2.security import sanitize_error_message


def get_logger(name: str) -> logging.Logger:
    """Logger for a gcs_oauth2 module (pass __name__)."""
    return logging.getLogger(name)


def log_with_context(
    logger: logging.Logger,
    level: int,
    msg: str,
    **kwargs: Any,
) -> None:
    """
    Emit ``msg`` with keyword arguments attached as record attributes.

    JSONFormatter picks up the known ones (credential_type, principal,
    http_status, ...), so callers do not build ``extra`` dicts by hand:

        log_with_context(
            logger, logging.DEBUG, "Fetched token",
            credential_type="service_account",
            expires_in=3600,
        )
    """
    logger.log(level, msg, extra=kwargs)


def _category_name(exc: BaseException) -> Optional[str]:
    category = getattr(exc, "category", None)
    if category is None:
        return None
    return getattr(category, "value", str(category))


def log_exception(
    logger: logging.Logger,
    exc: Exception,
    msg: str,
    level: int = logging.ERROR,
    include_traceback: bool = True,
    **kwargs: Any,
) -> None:
    """
    Log a failure with its category and a redacted copy of its message.

    CredentialsError subclasses contribute ``error_category``. Pass
    include_traceback=False for expected failures such as a rejected
    refresh token.
    """
    if kwargs.get("error_category") is None:
        category = _category_name(exc)
        if category is not None:
            kwargs["error_category"] = category
    kwargs["error_message"] = sanitize_error_message(str(exc))

    logger.log(level, msg, exc_info=exc if include_traceback else None, extra=kwargs)
