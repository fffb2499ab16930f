"""
Credentials for a service account, refreshed with a signed JWT assertion.

The token request follows the OAuth2 JWT bearer grant (RFC 7523): an RS256
JWT naming the account, the requested scopes and the token endpoint is
POSTed to the token endpoint in exchange for an access token.
"""

import base64
import json
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, FrozenSet, Optional, Sequence
from urllib.parse import urlencode

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from gcs_oauth2.auth.credentials import RefreshingCredentials
from gcs_oauth2.auth.parsers import (
    ServiceAccountInfo,
    check_response_status,
    parse_token_refresh_response,
)
from gcs_oauth2.auth.token_cache import (
    DEFAULT_EXPIRATION_MARGIN,
    TemporaryToken,
    utc_now,
)
from gcs_oauth2.config import CLOUD_PLATFORM_SCOPE, DEFAULT_TOKEN_URI
from gcs_oauth2.errors import CredentialsFormatError
from gcs_oauth2.http import HttpTransport

JWT_BEARER_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME = timedelta(hours=1)
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def _base64url_encode(data: bytes) -> str:
    """Encode bytes as base64url without padding per RFC 7515."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _json_segment(value: Dict[str, Any]) -> str:
    return _base64url_encode(json.dumps(value, separators=(",", ":")).encode("utf-8"))


def load_private_key(pem: str, source: str = "memory") -> rsa.RSAPrivateKey:
    """
    Load a PEM private key and check that it is RSA.

    Raises:
        CredentialsFormatError: Key does not decode or is not an RSA key
    """
    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise CredentialsFormatError(
            f"Invalid ServiceAccountCredentials, the private_key field could not "
            f"be loaded on data loaded from {source}",
            source=source,
            cause=e,
        ) from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise CredentialsFormatError(
            f"Invalid ServiceAccountCredentials, the private_key field is not an "
            f"RSA key on data loaded from {source}",
            source=source,
        )
    return key


class ServiceAccountCredentials(RefreshingCredentials):
    """
    Mints access tokens for a service account from its private key.

    Usage:
        info = parse_service_account_credentials(contents, path)
        credentials = ServiceAccountCredentials(info)
        header = credentials.authorization_header()

    The private key is decoded once, at construction, so a bad key fails
    fast instead of on the first request.
    """

    credential_type = "service_account"

    def __init__(
        self,
        info: ServiceAccountInfo,
        transport: Optional[HttpTransport] = None,
        expiration_margin: timedelta = DEFAULT_EXPIRATION_MARGIN,
        clock: Callable[[], datetime] = utc_now,
        default_scopes: Optional[Sequence[str]] = None,
        source: str = "memory",
    ):
        """
        Args:
            info: Parsed key material, with any caller scope/subject applied
            transport: HTTP transport (default: RequestsTransport)
            expiration_margin: Refresh this long before the token expires
            clock: Source of "now" for JWT timestamps and expiry checks
            default_scopes: Scopes requested when ``info.scopes`` is empty
            source: Where the key came from, for error messages

        Raises:
            CredentialsFormatError: If the private key cannot be used
        """
        self._info = info
        self._private_key = load_private_key(info.private_key, source)
        self._default_scopes = tuple(default_scopes or (CLOUD_PLATFORM_SCOPE,))
        super().__init__(transport, expiration_margin, clock)

    @property
    def info(self) -> ServiceAccountInfo:
        return self._info

    @property
    def account_email(self) -> str:
        return self._info.client_email

    @property
    def key_id(self) -> Optional[str]:
        return self._info.private_key_id

    @property
    def principal(self) -> Optional[str]:
        return self._info.client_email

    @property
    def token_uri(self) -> str:
        return self._info.token_uri or DEFAULT_TOKEN_URI

    @property
    def scopes(self) -> FrozenSet[str]:
        """Scopes requested in each assertion."""
        if self._info.scopes:
            return self._info.scopes
        return frozenset(self._default_scopes)

    def sign_blob(self, blob: bytes) -> bytes:
        """Sign ``blob`` with RSASSA-PKCS1-v1_5 over SHA-256."""
        return self._private_key.sign(blob, padding.PKCS1v15(), hashes.SHA256())

    def create_assertion(self, now: datetime) -> str:
        """
        Build the signed JWT sent to the token endpoint.

        Args:
            now: Issue time; the assertion is valid for one hour from it
        """
        header = {"alg": "RS256", "typ": "JWT"}
        if self._info.private_key_id:
            header["kid"] = self._info.private_key_id

        issued_at = int(now.timestamp())
        claims: Dict[str, Any] = {
            "iss": self._info.client_email,
            "scope": " ".join(sorted(self.scopes)),
            "aud": self.token_uri,
            "iat": issued_at,
            "exp": issued_at + int(ASSERTION_LIFETIME.total_seconds()),
        }
        if self._info.subject:
            claims["sub"] = self._info.subject

        signing_input = f"{_json_segment(header)}.{_json_segment(claims)}"
        signature = self.sign_blob(signing_input.encode("ascii"))
        return f"{signing_input}.{_base64url_encode(signature)}"

    def _fetch_token(self, now: datetime) -> TemporaryToken:
        body = urlencode(
            {
                "grant_type": JWT_BEARER_GRANT_TYPE,
                "assertion": self.create_assertion(now),
            }
        )
        response = self.transport.request(
            "POST",
            self.token_uri,
            headers={"Content-Type": FORM_CONTENT_TYPE},
            body=body,
        )
        check_response_status(response, "Token endpoint")
        return parse_token_refresh_response(response, now)

    def __repr__(self) -> str:
        return f"ServiceAccountCredentials(account_email={self.account_email!r})"
