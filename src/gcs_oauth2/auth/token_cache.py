"""
Thread-safe cache of one short-lived access token.

RefreshingCredentialsWrapper is shared by every credential type: it decides
when the cached token is stale and makes sure that, however many threads
ask for a header at once, only one refresh call is in flight.
"""

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from gcs_oauth2.config import DEFAULT_EXPIRATION_MARGIN_SECONDS
from gcs_oauth2.logging.utilities import get_logger, log_exception, log_with_context

logger = get_logger(__name__)

DEFAULT_EXPIRATION_MARGIN = timedelta(seconds=DEFAULT_EXPIRATION_MARGIN_SECONDS)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TemporaryToken:
    """Authorization header value plus the instant it stops being valid."""

    authorization_header: str
    expiration: datetime

    def is_expired(
        self, now: datetime, margin: timedelta = DEFAULT_EXPIRATION_MARGIN
    ) -> bool:
        """Check if token should no longer be handed out at ``now``."""
        return now >= self.expiration - margin


RefreshFunction = Callable[[], TemporaryToken]


class RefreshingCredentialsWrapper:
    """
    Cache of one TemporaryToken with single-flight refresh.

    Usage:
        wrapper = RefreshingCredentialsWrapper(fetch_token)
        header = wrapper.authorization_header()

    A valid cached token is returned without taking the lock. When the
    token is missing or stale the first caller becomes the leader and runs
    ``refresh``; callers arriving meanwhile wait on the leader's Future and
    receive the same header or the same exception. A failed refresh leaves
    the previous token in place.
    """

    def __init__(
        self,
        refresh: RefreshFunction,
        expiration_margin: timedelta = DEFAULT_EXPIRATION_MARGIN,
        clock: Callable[[], datetime] = utc_now,
        name: str = "credentials",
    ):
        """
        Args:
            refresh: Fetches a fresh token; raises on failure
            expiration_margin: Treat tokens as expired this long before
                their literal expiration
            clock: Source of "now" when callers do not pass one
            name: Label used in log records
        """
        self._refresh = refresh
        self._margin = expiration_margin
        self._clock = clock
        self._name = name
        self._lock = threading.Lock()
        self._token: Optional[TemporaryToken] = None
        self._in_flight: Optional[Future] = None

    @property
    def expiration_margin(self) -> timedelta:
        return self._margin

    @property
    def token(self) -> Optional[TemporaryToken]:
        """Currently cached token (may be stale)."""
        return self._token

    @property
    def token_expiration(self) -> Optional[datetime]:
        token = self._token
        return token.expiration if token else None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check if a refresh would be triggered at ``now``."""
        token = self._token
        if token is None:
            return True
        return token.is_expired(now or self._clock(), self._margin)

    def clear(self) -> None:
        """Drop the cached token; the next call refreshes."""
        with self._lock:
            self._token = None
        log_with_context(
            logger, logging.DEBUG, "Cleared token cache", credential_type=self._name
        )

    def authorization_header(self, now: Optional[datetime] = None) -> str:
        """
        Return the current authorization header, refreshing if needed.

        Args:
            now: Instant to evaluate expiry against (default: clock())

        Returns:
            Header value such as "Bearer ya29..."

        Raises:
            Whatever the refresh function raised for this refresh attempt
        """
        now = now or self._clock()

        # Reference reads are atomic; a valid token needs no lock
        token = self._token
        if token is not None and not token.is_expired(now, self._margin):
            return token.authorization_header

        with self._lock:
            token = self._token
            if token is not None and not token.is_expired(now, self._margin):
                return token.authorization_header
            future = self._in_flight
            leader = future is None
            if leader:
                future = Future()
                self._in_flight = future

        if not leader:
            log_with_context(
                logger,
                logging.DEBUG,
                "Waiting for in-flight token refresh",
                credential_type=self._name,
            )
            return future.result()

        return self._run_refresh(future)

    def _run_refresh(self, future: Future) -> str:
        try:
            new_token = self._refresh()
        except BaseException as exc:
            with self._lock:
                self._in_flight = None
            future.set_exception(exc)
            log_exception(
                logger,
                exc,
                "Token refresh failed",
                level=logging.WARNING,
                include_traceback=False,
                credential_type=self._name,
            )
            raise

        with self._lock:
            self._token = new_token
            self._in_flight = None
        future.set_result(new_token.authorization_header)

        log_with_context(
            logger,
            logging.DEBUG,
            "Token refreshed",
            credential_type=self._name,
            expires_at=new_token.expiration.isoformat(),
        )
        return new_token.authorization_header
