"""Credentials for an end user, refreshed through an OAuth2 refresh token."""

from datetime import datetime, timedelta
from typing import Callable, Optional
from urllib.parse import urlencode

from gcs_oauth2.auth.credentials import RefreshingCredentials
from gcs_oauth2.auth.parsers import (
    AuthorizedUserInfo,
    check_response_status,
    parse_token_refresh_response,
)
from gcs_oauth2.auth.token_cache import (
    DEFAULT_EXPIRATION_MARGIN,
    TemporaryToken,
    utc_now,
)
from gcs_oauth2.http import HttpTransport

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class AuthorizedUserCredentials(RefreshingCredentials):
    """
    Exchanges a long-lived refresh token for short-lived access tokens.

    Usage:
        info = parse_authorized_user_credentials(contents, path)
        credentials = AuthorizedUserCredentials(info)
        header = credentials.authorization_header()
    """

    credential_type = "authorized_user"

    def __init__(
        self,
        info: AuthorizedUserInfo,
        transport: Optional[HttpTransport] = None,
        expiration_margin: timedelta = DEFAULT_EXPIRATION_MARGIN,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._info = info
        super().__init__(transport, expiration_margin, clock)

    @property
    def info(self) -> AuthorizedUserInfo:
        return self._info

    @property
    def principal(self) -> Optional[str]:
        return self._info.client_id

    def _fetch_token(self, now: datetime) -> TemporaryToken:
        body = urlencode(
            {
                "grant_type": "refresh_token",
                "client_id": self._info.client_id,
                "client_secret": self._info.client_secret,
                "refresh_token": self._info.refresh_token,
            }
        )
        response = self.transport.request(
            "POST",
            self._info.token_uri,
            headers={"Content-Type": FORM_CONTENT_TYPE},
            body=body,
        )
        check_response_status(response, "Token endpoint")
        return parse_token_refresh_response(response, now)

    def __repr__(self) -> str:
        return f"AuthorizedUserCredentials(client_id={self._info.client_id!r})"
