"""
Credential capability shared by every credential kind.

Credentials produce the value of an HTTP Authorization header. Kinds that
hold refreshable material delegate caching to a RefreshingCredentialsWrapper
and only supply the function that fetches a new token.
"""

import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Optional

from gcs_oauth2.auth.token_cache import (
    DEFAULT_EXPIRATION_MARGIN,
    RefreshingCredentialsWrapper,
    TemporaryToken,
    utc_now,
)
from gcs_oauth2.http import HttpTransport, RequestsTransport
from gcs_oauth2.logging.audit import AuditEventType, get_audit_logger
from gcs_oauth2.logging.utilities import get_logger, log_with_context

logger = get_logger(__name__)


class Credentials(ABC):
    """Anything that can produce an Authorization header value."""

    credential_type: str = "unknown"

    @abstractmethod
    def authorization_header(self, now: Optional[datetime] = None) -> str:
        """
        Return the current header value, refreshing if necessary.

        Args:
            now: Instant used for expiry decisions (default: current UTC time)

        Raises:
            CredentialsError: If a required refresh failed
        """


class AnonymousCredentials(Credentials):
    """Credentials for unauthenticated access to public data."""

    credential_type = "anonymous"

    def authorization_header(self, now: Optional[datetime] = None) -> str:
        return ""

    def __repr__(self) -> str:
        return "AnonymousCredentials()"


class RefreshingCredentials(Credentials):
    """
    Base for credential kinds whose header comes from a cached token.

    Subclasses implement _fetch_token(now) and describe themselves through
    ``credential_type`` and ``principal``; this class owns the wrapper and
    the audit trail for refresh outcomes.
    """

    def __init__(
        self,
        transport: Optional[HttpTransport] = None,
        expiration_margin: timedelta = DEFAULT_EXPIRATION_MARGIN,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._transport = transport or RequestsTransport()
        self._clock = clock
        self._wrapper = RefreshingCredentialsWrapper(
            self._refresh,
            expiration_margin=expiration_margin,
            clock=clock,
            name=self.credential_type,
        )

    @property
    def principal(self) -> Optional[str]:
        """Identity the tokens are issued to, for logs and audit records."""
        return None

    @property
    def transport(self) -> HttpTransport:
        return self._transport

    @property
    def token_expiration(self) -> Optional[datetime]:
        return self._wrapper.token_expiration

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check if the next authorization_header() call would refresh."""
        return self._wrapper.is_expired(now)

    def clear(self) -> None:
        """Forget the cached token."""
        self._wrapper.clear()
        get_audit_logger().log_auth_event(
            event_type=AuditEventType.AUTH_CACHE_CLEARED,
            credential_type=self.credential_type,
            success=True,
            principal=self.principal,
        )

    def authorization_header(self, now: Optional[datetime] = None) -> str:
        return self._wrapper.authorization_header(now)

    @abstractmethod
    def _fetch_token(self, now: datetime) -> TemporaryToken:
        """Perform one network exchange and return the resulting token."""

    def _refresh(self) -> TemporaryToken:
        start = time.perf_counter()
        try:
            token = self._fetch_token(self._clock())
        except Exception as e:
            get_audit_logger().log_auth_event(
                event_type=AuditEventType.AUTH_TOKEN_REFRESH_FAILURE,
                credential_type=self.credential_type,
                success=False,
                principal=self.principal,
                error_message=str(e),
            )
            raise

        duration_ms = round((time.perf_counter() - start) * 1000, 1)
        log_with_context(
            logger,
            logging.INFO,
            "Acquired access token",
            credential_type=self.credential_type,
            principal=self.principal,
            expires_at=token.expiration.isoformat(),
            duration_ms=duration_ms,
        )
        get_audit_logger().log_auth_event(
            event_type=AuditEventType.AUTH_TOKEN_ACQUIRED,
            credential_type=self.credential_type,
            success=True,
            principal=self.principal,
            expires_at=token.expiration.isoformat(),
        )
        return token
