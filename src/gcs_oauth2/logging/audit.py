"""
Audit trail for credential resolution and token lifecycle.

Each event is one JSON line in a dedicated file, kept apart from the
application log so that security reviews can answer "which principal did
this process authenticate as, and when". Off unless
``audit_logging_enabled`` is set in AuthConfig.
"""

import json
import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from gcs_oauth2.config import get_config
from gcs_oauth2.security import sanitize_error_message

AUDIT_LOGGER_NAME = "gcs_oauth2.audit"


class AuditEventType(Enum):
    """Auditable events."""

    # Token lifecycle
    AUTH_TOKEN_ACQUIRED = "auth.token.acquired"
    AUTH_TOKEN_REFRESH_FAILURE = "auth.token.refresh_failure"
    AUTH_CACHE_CLEARED = "auth.cache.cleared"

    # Application Default Credentials resolution
    CRED_RESOLVED = "cred.resolved"
    CRED_NOT_FOUND = "cred.not_found"
    CRED_INVALID = "cred.invalid"


class AuditLogger:
    """
    Writes audit events when enabled, otherwise drops them.

        audit = get_audit_logger()
        audit.log_auth_event(
            AuditEventType.AUTH_TOKEN_ACQUIRED,
            credential_type="service_account",
            success=True,
            principal="robot@project.iam.gserviceaccount.com",
        )
    """

    def __init__(self, enabled: bool = False, audit_log_path: Optional[str] = None):
        self.enabled = enabled
        self.audit_log_path = audit_log_path
        self._handler: Optional[logging.Handler] = None

        self._logger = logging.getLogger(AUDIT_LOGGER_NAME)
        self._logger.setLevel(logging.INFO)
        # Audit lines must not show up in the application log
        self._logger.propagate = False

        if enabled and audit_log_path:
            Path(audit_log_path).parent.mkdir(parents=True, exist_ok=True)
            self._handler = logging.FileHandler(audit_log_path, encoding="utf-8")
            self._handler.setFormatter(logging.Formatter("%(message)s"))
            self._logger.addHandler(self._handler)

    def close(self) -> None:
        """Detach and close the audit file."""
        if self._handler is None:
            return
        self._logger.removeHandler(self._handler)
        self._handler.close()
        self._handler = None

    def _emit(self, event_type: AuditEventType, success: bool, **fields: Any) -> None:
        if not self.enabled:
            return
        if fields.get("error_message"):
            fields["error_message"] = sanitize_error_message(fields["error_message"])

        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type.value,
            "success": success,
            "component": "gcs_oauth2",
        }
        record.update((k, v) for k, v in fields.items() if v is not None)
        self._logger.info(json.dumps(record, default=str))

    def log_auth_event(
        self,
        event_type: AuditEventType,
        credential_type: str,
        success: bool,
        principal: Optional[str] = None,
        error_message: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        """
        Record a token acquisition, refresh failure or cache clear.

        Args:
            event_type: One of the AUTH_* events
            credential_type: service_account, authorized_user, compute_engine
            success: Whether a token was obtained
            principal: Account email or OAuth client id
            error_message: Failure text, redacted before writing
            **kwargs: Extra fields (token_uri, expires_at, ...)
        """
        self._emit(
            event_type,
            success,
            credential_type=credential_type,
            principal=principal,
            error_message=error_message,
            **kwargs,
        )

    def log_credential_event(
        self,
        event_type: AuditEventType,
        success: bool,
        source: Optional[str] = None,
        credential_type: Optional[str] = None,
        path: Optional[str] = None,
        error_message: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        """
        Record the outcome of an ADC lookup step.

        ``source`` is env_var, well_known_path or gce.
        """
        self._emit(
            event_type,
            success,
            source=source,
            credential_type=credential_type,
            path=path,
            error_message=error_message,
            **kwargs,
        )


_audit_instance: Optional[AuditLogger] = None
_audit_lock = threading.Lock()


def get_audit_logger() -> AuditLogger:
    """Process-wide audit logger, configured from get_config() on first use."""
    global _audit_instance
    if _audit_instance is None:
        with _audit_lock:
            if _audit_instance is None:
                config = get_config()
                _audit_instance = AuditLogger(
                    enabled=config.audit_logging_enabled,
                    audit_log_path=config.audit_log_path,
                )
    return _audit_instance


def reset_audit_logger() -> None:
    """Close and forget the audit logger; tests call this after set_config()."""
    global _audit_instance
    with _audit_lock:
        if _audit_instance is not None:
            _audit_instance.close()
        _audit_instance = None
