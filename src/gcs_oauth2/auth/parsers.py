"""
Parsers that turn raw credential bytes and endpoint responses into records.

Every parser is a pure function: it either returns a fully populated record
or raises, never leaving partial state behind.

    - parse_authorized_user_credentials: authorized_user JSON file
    - parse_service_account_credentials: service_account JSON key file
    - parse_service_account_p12: PKCS#12 key bundle
    - parse_metadata_server_response: GCE per-account description
    - parse_token_refresh_response: OAuth2 / metadata token response
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Type, TypeVar, Union

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID
from pydantic import BaseModel, ValidationError

from gcs_oauth2.auth.schemas import (
    AuthorizedUserFile,
    MetadataServerResponse,
    ServiceAccountFile,
    TokenResponse,
)
from gcs_oauth2.auth.token_cache import TemporaryToken
from gcs_oauth2.config import DEFAULT_TOKEN_URI
from gcs_oauth2.errors import CredentialsFormatError, ProtocolError
from gcs_oauth2.http import HttpResponse
from gcs_oauth2.logging.utilities import get_logger, log_with_context

logger = get_logger(__name__)

# Password Google uses for every downloadable P12 key
P12_PASSWORD = b"notasecret"

M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class AuthorizedUserInfo:
    """Material needed to refresh an end-user's token."""

    client_id: str
    client_secret: str
    refresh_token: str
    token_uri: str = DEFAULT_TOKEN_URI


@dataclass(frozen=True)
class ServiceAccountInfo:
    """
    Material needed to mint service-account tokens.

    ``scopes`` and ``subject`` never come from the key file; callers set
    them with dataclasses.replace() after a successful parse.
    """

    client_email: str
    private_key: str
    private_key_id: Optional[str] = None
    token_uri: Optional[str] = None
    project_id: Optional[str] = None
    scopes: Optional[FrozenSet[str]] = None
    subject: Optional[str] = None


@dataclass(frozen=True)
class ServiceAccountMetadata:
    """Identity reported by the GCE metadata service for one account."""

    email: str
    scopes: FrozenSet[str]


def _to_text(contents: Union[str, bytes]) -> str:
    if isinstance(contents, bytes):
        # Tolerates a UTF-8 BOM left by Windows editors
        return contents.decode("utf-8-sig")
    return contents


def _split_validation_errors(exc: ValidationError) -> Tuple[List[str], List[str]]:
    """Return (missing fields, otherwise invalid fields) from a ValidationError."""
    missing: List[str] = []
    invalid: List[str] = []
    for error in exc.errors():
        name = ".".join(str(part) for part in error["loc"][:1])
        target = missing if error["type"] == "missing" else invalid
        if name not in target:
            target.append(name)
    return missing, invalid


def _load_json_object(contents: Union[str, bytes]) -> Dict[str, Any]:
    """Decode a JSON object; raises ValueError for anything else."""
    data = json.loads(_to_text(contents))
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


def _parse_credentials_document(
    model: Type[M], kind: str, contents: Union[str, bytes], source: str
) -> M:
    try:
        data = _load_json_object(contents)
    except ValueError as e:
        # json.JSONDecodeError and UnicodeDecodeError are both ValueErrors
        raise CredentialsFormatError(
            f"Invalid {kind}, parsing failed on data loaded from {source}",
            source=source,
            cause=e,
        ) from e

    try:
        return model.model_validate(data)
    except ValidationError as e:
        missing, invalid = _split_validation_errors(e)
        problems = []
        if missing:
            problems.append(f"the {', '.join(missing)} field(s) are missing")
        if invalid:
            problems.append(f"the {', '.join(invalid)} field(s) are invalid")
        # pydantic's text repeats the input values, secrets included
        raise CredentialsFormatError(
            f"Invalid {kind}, {' and '.join(problems)} on data loaded from {source}",
            source=source,
            missing_fields=missing,
        ) from None


def parse_authorized_user_credentials(
    contents: Union[str, bytes],
    source: str,
    default_token_uri: str = DEFAULT_TOKEN_URI,
) -> AuthorizedUserInfo:
    """
    Parse an ``authorized_user`` credentials document.

    Args:
        contents: Raw JSON text or bytes
        source: Where the contents came from (path or "memory"), for errors
        default_token_uri: Token endpoint used for the refresh

    Raises:
        CredentialsFormatError: Malformed JSON or missing client_id,
            client_secret or refresh_token
    """
    document = _parse_credentials_document(
        AuthorizedUserFile, "AuthorizedUserCredentials", contents, source
    )
    return AuthorizedUserInfo(
        client_id=document.client_id,
        client_secret=document.client_secret,
        refresh_token=document.refresh_token,
        token_uri=default_token_uri,
    )


def parse_service_account_credentials(
    contents: Union[str, bytes],
    source: str,
    default_token_uri: str = DEFAULT_TOKEN_URI,
) -> ServiceAccountInfo:
    """
    Parse a ``service_account`` JSON key document.

    The ``type`` field is not checked here; callers dispatch on it first.

    Args:
        contents: Raw JSON text or bytes
        source: Where the contents came from (path or "memory"), for errors
        default_token_uri: Token endpoint when the file names none

    Raises:
        CredentialsFormatError: Malformed JSON or missing client_email or
            private_key
    """
    document = _parse_credentials_document(
        ServiceAccountFile, "ServiceAccountCredentials", contents, source
    )
    return ServiceAccountInfo(
        client_email=document.client_email,
        private_key=document.private_key,
        private_key_id=document.private_key_id,
        token_uri=document.token_uri or default_token_uri,
        project_id=document.project_id,
    )


def parse_service_account_p12(
    contents: bytes,
    source: str,
    default_token_uri: str = DEFAULT_TOKEN_URI,
) -> ServiceAccountInfo:
    """
    Decode a PKCS#12 service account key.

    The certificate's subject CN carries the numeric service account id,
    which becomes ``client_email``. Decoder errors are not propagated: they
    describe PKCS#12 internals, not what the caller should fix.

    Raises:
        CredentialsFormatError: "Invalid credentials file <source>" for any
            decode failure
    """
    try:
        private_key, certificate, _ = pkcs12.load_key_and_certificates(
            contents, P12_PASSWORD
        )
        service_account_id = _service_account_id(certificate)
        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise ValueError("P12 bundle does not contain an RSA private key")
        pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("ascii")
    except (ValueError, TypeError) as e:
        log_with_context(
            logger,
            logging.DEBUG,
            "P12 decode failed",
            source=source,
            error_message=str(e),
        )
        raise CredentialsFormatError(
            f"Invalid credentials file {source}", source=source
        ) from None

    return ServiceAccountInfo(
        client_email=service_account_id,
        private_key=pem,
        token_uri=default_token_uri,
    )


def _service_account_id(certificate: Optional[x509.Certificate]) -> str:
    if certificate is None:
        raise ValueError("P12 bundle has no certificate")
    names = certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not names:
        raise ValueError("certificate subject has no common name")
    service_account_id = str(names[0].value)
    if not service_account_id.isdigit():
        raise ValueError("service account id missing or not formatted correctly")
    return service_account_id


def _parse_response(
    model: Type[M], response: HttpResponse, required: Tuple[str, ...]
) -> M:
    description = (
        f"Could not find all required fields in response ({', '.join(required)})."
    )
    try:
        data = _load_json_object(response.payload)
    except ValueError as e:
        raise ProtocolError(
            f"{response.payload}{description}",
            status_code=response.status_code,
            payload=response.payload,
            cause=e,
        ) from e

    try:
        return model.model_validate(data)
    except ValidationError as e:
        missing, invalid = _split_validation_errors(e)
        details = []
        if missing:
            details.append(f"missing: {', '.join(missing)}")
        if invalid:
            details.append(f"invalid: {', '.join(invalid)}")
        description = f"{description[:-1]}; {'; '.join(details)}."
        # pydantic's text repeats the input values, secrets included
        raise ProtocolError(
            f"{response.payload}{description}",
            status_code=response.status_code,
            payload=response.payload,
        ) from None


def parse_metadata_server_response(response: HttpResponse) -> ServiceAccountMetadata:
    """
    Parse the metadata service's description of a service account.

    ``scopes`` may be a JSON array or a bare string; both become a set.

    Raises:
        ProtocolError: Body is not JSON or lacks ``email``/``scopes``; the
            message starts with the response body verbatim
    """
    body = _parse_response(MetadataServerResponse, response, ("email", "scopes"))
    if isinstance(body.scopes, str):
        scopes = frozenset({body.scopes})
    else:
        scopes = frozenset(body.scopes)
    return ServiceAccountMetadata(email=body.email, scopes=scopes)


def parse_token_refresh_response(
    response: HttpResponse, now: datetime
) -> TemporaryToken:
    """
    Turn a token endpoint response into a TemporaryToken.

    Args:
        response: Response from the OAuth2 or metadata token endpoint
        now: Instant the response was received

    Returns:
        Token with header "<token_type> <access_token>" expiring at
        now + expires_in

    Raises:
        ProtocolError: Body is not JSON or lacks access_token, expires_in or
            token_type; the message starts with the response body verbatim
    """
    body = _parse_response(
        TokenResponse, response, ("access_token", "expires_in", "token_type")
    )
    return TemporaryToken(
        authorization_header=f"{body.token_type} {body.access_token}",
        expiration=now + timedelta(seconds=body.expires_in),
    )


def check_response_status(response: HttpResponse, endpoint: str) -> None:
    """
    Reject non-2xx responses before parsing them.

    Raises:
        ProtocolError: Carrying the status and the body verbatim
    """
    if response.ok:
        return
    raise ProtocolError(
        f"{endpoint} returned HTTP {response.status_code}: {response.payload}",
        status_code=response.status_code,
        payload=response.payload,
    )
