"""
Structured logging module.

Provides JSON logging with context propagation and an audit trail for
authentication events.

Import directly from sub-modules:
    from gcs_oauth2.logging.setup import setup_logging
    from gcs_oauth2.logging.utilities import get_logger, log_with_context
    from gcs_oauth2.logging.audit import get_audit_logger, AuditEventType
"""

from gcs_oauth2.logging.context import (
    clear_log_context,
    get_log_context,
    set_log_context,
)
from gcs_oauth2.logging.setup import setup_logging
from gcs_oauth2.logging.utilities import get_logger, log_exception, log_with_context

__all__ = [
    "setup_logging",
    "get_logger",
    "log_with_context",
    "log_exception",
    "set_log_context",
    "get_log_context",
    "clear_log_context",
]
