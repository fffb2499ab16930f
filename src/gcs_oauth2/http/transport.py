"""
Synchronous HTTP transport used by token refresh and metadata queries.

Credential types only depend on the HttpTransport protocol; RequestsTransport
is the default implementation over a pooled requests.Session.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Protocol, Union

import requests

from gcs_oauth2.errors import RequestTimeoutError, TransportError
from gcs_oauth2.logging.utilities import get_logger, log_with_context
from gcs_oauth2.security import sanitize_url

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class HttpResponse:
    """Status, headers and decoded body of a completed HTTP exchange."""

    status_code: int
    payload: str
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class HttpTransport(Protocol):
    """Anything that can perform one blocking HTTP request."""

    def request(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[Union[str, bytes]] = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        """
        Perform the request.

        Returns the response for any HTTP status code.

        Raises:
            TransportError: If no HTTP response was received
        """
        ...


class RequestsTransport:
    """
    HttpTransport backed by requests.

    The session is created lazily and reused, so one transport instance
    shares its connection pool between every credential that holds it.
    Safe to call from several threads.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """
        Args:
            session: Optional pre-configured session (proxies, CA bundle)
            timeout: Default timeout in seconds when a call passes none
        """
        self._session = session
        self._owns_session = session is None
        self.timeout = timeout

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def request(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[Union[str, bytes]] = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        effective_timeout = timeout if timeout is not None else self.timeout
        start = time.perf_counter()
        try:
            response = self.session.request(
                method,
                url,
                headers=dict(headers or {}),
                data=body,
                timeout=effective_timeout,
            )
        except requests.exceptions.Timeout as e:
            raise RequestTimeoutError(
                f"{method} {sanitize_url(url)} timed out after {effective_timeout}s",
                cause=e,
                context={"url": sanitize_url(url)},
            ) from e
        except requests.exceptions.RequestException as e:
            raise TransportError(
                f"{method} {sanitize_url(url)} failed: {type(e).__name__}",
                cause=e,
                context={"url": sanitize_url(url)},
            ) from e

        log_with_context(
            logger,
            logging.DEBUG,
            "HTTP request completed",
            http_method=method,
            url=url,
            http_status=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 1),
        )
        return HttpResponse(
            status_code=response.status_code,
            payload=response.text,
            headers=dict(response.headers),
        )

    def close(self) -> None:
        """Close the session if this transport created it."""
        if self._session is not None and self._owns_session:
            self._session.close()
            self._session = None

    def __enter__(self) -> "RequestsTransport":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
