"""JSON-lines and console formatters for credential logs."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Tuple

from gcs_oauth2.logging.context import get_log_context
from gcs_oauth2.security import sanitize_error_message, sanitize_url

# Levels that also record the emitting file:line
_LOCATED_LEVELS = (logging.DEBUG, logging.ERROR, logging.CRITICAL)


def _utc_timestamp() -> str:
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record, with log context merged in.

    Only whitelisted extras are copied onto the entry. URL-valued fields
    and error messages are redacted on the way out.
    """

    EXTRA_FIELDS: Tuple[str, ...] = (
        # Credential identity
        "credential_type",
        "principal",
        "source",
        "path",
        "scopes",
        # Endpoint calls
        "token_uri",
        "url",
        "http_method",
        "http_status",
        "duration_ms",
        # Token lifetime
        "expires_at",
        "expires_in",
        # Failures
        "error_category",
        "error_message",
    )

    URL_FIELDS = frozenset({"token_uri", "url"})

    def _clean(self, field: str, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        if field in self.URL_FIELDS:
            return sanitize_url(value)
        if field == "error_message":
            return sanitize_error_message(value)
        return value

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": _utc_timestamp(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update({k: v for k, v in get_log_context().items() if v})

        if record.levelno in _LOCATED_LEVELS:
            entry["file"] = f"{record.filename}:{record.lineno}"

        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = self._clean(field, value)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """``<time> - <LEVEL> - [component] - [credential_type] - <message>``"""

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_log_context()
        credential_type = getattr(record, "credential_type", None) or ctx["credential_type"]

        parts = [datetime.now().strftime("%Y-%m-%d %H:%M:%S"), record.levelname]
        parts.extend(f"[{tag}]" for tag in (ctx["component"], credential_type) if tag)
        parts.append(record.getMessage())
        return " - ".join(parts)
