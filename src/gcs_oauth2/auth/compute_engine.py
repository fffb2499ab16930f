"""
Credentials served by the Compute Engine metadata service.

Tokens come from the instance's metadata server, which is reachable only
from inside a Google Cloud VM. Nothing is fetched at construction; the
first authorization_header() call performs the first request.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, FrozenSet, Optional

from gcs_oauth2.auth.credentials import RefreshingCredentials
from gcs_oauth2.auth.parsers import (
    ServiceAccountMetadata,
    check_response_status,
    parse_metadata_server_response,
    parse_token_refresh_response,
)
from gcs_oauth2.auth.token_cache import (
    DEFAULT_EXPIRATION_MARGIN,
    TemporaryToken,
    utc_now,
)
from gcs_oauth2.config import DEFAULT_METADATA_HOST
from gcs_oauth2.http import HttpTransport
from gcs_oauth2.logging.utilities import get_logger, log_with_context

logger = get_logger(__name__)

DEFAULT_SERVICE_ACCOUNT = "default"
METADATA_FLAVOR_HEADERS = {"Metadata-Flavor": "Google"}
SERVICE_ACCOUNTS_PATH = "/computeMetadata/v1/instance/service-accounts/"


class ComputeEngineCredentials(RefreshingCredentials):
    """
    Fetches tokens for a VM's attached service account.

    Usage:
        credentials = ComputeEngineCredentials()
        header = credentials.authorization_header()
        info = credentials.service_account_info()  # email and scopes

    The account description is queried and cached separately from the
    token; looking it up never refreshes or invalidates the token.
    """

    credential_type = "compute_engine"

    def __init__(
        self,
        service_account_email: str = DEFAULT_SERVICE_ACCOUNT,
        transport: Optional[HttpTransport] = None,
        expiration_margin: timedelta = DEFAULT_EXPIRATION_MARGIN,
        clock: Callable[[], datetime] = utc_now,
        metadata_host: str = DEFAULT_METADATA_HOST,
    ):
        """
        Args:
            service_account_email: Account to act as ("default" for the
                VM's primary account)
            transport: HTTP transport (default: RequestsTransport)
            expiration_margin: Refresh this long before the token expires
            clock: Source of "now" for expiry checks
            metadata_host: Host (optionally host:port) of the metadata server
        """
        self._requested_email = service_account_email
        self._metadata_host = metadata_host
        self._info_lock = threading.Lock()
        self._metadata: Optional[ServiceAccountMetadata] = None
        super().__init__(transport, expiration_margin, clock)

    @property
    def account_email(self) -> str:
        """Resolved account email, or the requested alias before lookup."""
        metadata = self._metadata
        return metadata.email if metadata else self._requested_email

    @property
    def scopes(self) -> FrozenSet[str]:
        """Scopes granted to the account; empty until service_account_info()."""
        metadata = self._metadata
        return metadata.scopes if metadata else frozenset()

    @property
    def principal(self) -> Optional[str]:
        return self.account_email

    def _account_url(self) -> str:
        return (
            f"http://{self._metadata_host}{SERVICE_ACCOUNTS_PATH}"
            f"{self._requested_email}/"
        )

    def service_account_info(self, refresh: bool = False) -> ServiceAccountMetadata:
        """
        Describe the account through the metadata service.

        Args:
            refresh: Query again even if a description is cached

        Raises:
            TransportError: Metadata server unreachable
            ProtocolError: Non-2xx status or a body without email/scopes
        """
        with self._info_lock:
            if self._metadata is not None and not refresh:
                return self._metadata

            response = self.transport.request(
                "GET",
                f"{self._account_url()}?recursive=true",
                headers=METADATA_FLAVOR_HEADERS,
            )
            check_response_status(response, "Metadata server")
            self._metadata = parse_metadata_server_response(response)

        log_with_context(
            logger,
            logging.DEBUG,
            "Loaded service account metadata",
            credential_type=self.credential_type,
            principal=self._metadata.email,
            scopes=sorted(self._metadata.scopes),
        )
        return self._metadata

    def _fetch_token(self, now: datetime) -> TemporaryToken:
        response = self.transport.request(
            "GET", f"{self._account_url()}token", headers=METADATA_FLAVOR_HEADERS
        )
        check_response_status(response, "Metadata server")
        return parse_token_refresh_response(response, now)

    def __repr__(self) -> str:
        return f"ComputeEngineCredentials(account_email={self.account_email!r})"
