"""
Application Default Credentials resolution and credential factories.

Resolution order (first applicable source wins):
    1. File named by GOOGLE_APPLICATION_CREDENTIALS (must load if set)
    2. gcloud's well-known ADC file (skipped if absent, must load if present)
    3. Compute Engine metadata service (if running on a GCE VM)
    4. CredentialsNotFoundError pointing at the ADC documentation

Loading a file distinguishes three outcomes through LoadResult: a
credential was built, the file is valid but not a service account (keep
searching), or no file applied. Everything else raises.
"""

import json
import logging
from dataclasses import dataclass, replace
from datetime import timedelta
from enum import Enum
from typing import FrozenSet, Iterable, Optional

from gcs_oauth2.auth.authorized_user import AuthorizedUserCredentials
from gcs_oauth2.auth.compute_engine import (
    DEFAULT_SERVICE_ACCOUNT,
    ComputeEngineCredentials,
)
from gcs_oauth2.auth.credentials import AnonymousCredentials, Credentials
from gcs_oauth2.auth.parsers import (
    ServiceAccountInfo,
    parse_authorized_user_credentials,
    parse_service_account_credentials,
    parse_service_account_p12,
)
from gcs_oauth2.auth.platform import CredentialsEnvironment
from gcs_oauth2.auth.service_account import ServiceAccountCredentials
from gcs_oauth2.config import AuthConfig, get_config
from gcs_oauth2.errors import (
    ConfigurationError,
    CredentialsError,
    CredentialsNotFoundError,
    UnsupportedCredentialTypeError,
)
from gcs_oauth2.http import HttpTransport, RequestsTransport
from gcs_oauth2.logging.audit import AuditEventType, get_audit_logger
from gcs_oauth2.logging.utilities import get_logger, log_exception, log_with_context

logger = get_logger(__name__)

ADC_LINK = "https://developers.google.com/identity/protocols/application-default-credentials"
MEMORY_SOURCE = "memory"


class LoadStatus(Enum):
    """Outcome of trying to load credentials from a path."""

    FOUND = "found"
    NOT_SERVICE_ACCOUNT = "not_service_account"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class LoadResult:
    """
    Result of a path-based load that did not raise.

    ``credentials`` is set only when ``status`` is FOUND.
    """

    status: LoadStatus
    credentials: Optional[Credentials] = None
    path: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.status is LoadStatus.FOUND


def _scope_set(scopes: Optional[Iterable[str]]) -> Optional[FrozenSet[str]]:
    """Normalize caller scopes; a bare string is one scope, not its characters."""
    if scopes is None:
        return None
    if isinstance(scopes, str):
        return frozenset({scopes})
    return frozenset(scopes)


class _CredentialsBuilder:
    """Applies configuration and the shared transport to new credentials."""

    def __init__(
        self,
        config: Optional[AuthConfig] = None,
        transport: Optional[HttpTransport] = None,
    ):
        self.config = config or get_config()
        self._transport = transport

    @property
    def transport(self) -> HttpTransport:
        if self._transport is None:
            self._transport = RequestsTransport(
                timeout=self.config.http_timeout_seconds
            )
        return self._transport

    @property
    def expiration_margin(self) -> timedelta:
        return timedelta(seconds=self.config.expiration_margin_seconds)

    def authorized_user(self, contents: bytes, source: str) -> AuthorizedUserCredentials:
        info = parse_authorized_user_credentials(
            contents, source, default_token_uri=self.config.token_uri
        )
        return AuthorizedUserCredentials(
            info,
            transport=self.transport,
            expiration_margin=self.expiration_margin,
        )

    def service_account(
        self,
        info: ServiceAccountInfo,
        source: str,
        scopes: Optional[Iterable[str]],
        subject: Optional[str],
    ) -> ServiceAccountCredentials:
        # Caller values are applied only to a fully parsed record
        info = replace(
            info,
            scopes=_scope_set(scopes),
            subject=subject,
        )
        return ServiceAccountCredentials(
            info,
            transport=self.transport,
            expiration_margin=self.expiration_margin,
            default_scopes=self.config.default_scopes,
            source=source,
        )

    def service_account_json(
        self,
        contents: bytes,
        source: str,
        scopes: Optional[Iterable[str]],
        subject: Optional[str],
    ) -> ServiceAccountCredentials:
        info = parse_service_account_credentials(
            contents, source, default_token_uri=self.config.token_uri
        )
        return self.service_account(info, source, scopes, subject)

    def service_account_p12(
        self,
        contents: bytes,
        source: str,
        scopes: Optional[Iterable[str]],
        subject: Optional[str],
    ) -> ServiceAccountCredentials:
        info = parse_service_account_p12(
            contents, source, default_token_uri=self.config.token_uri
        )
        return self.service_account(info, source, scopes, subject)

    def compute_engine(
        self, service_account_email: str = DEFAULT_SERVICE_ACCOUNT
    ) -> ComputeEngineCredentials:
        return ComputeEngineCredentials(
            service_account_email,
            transport=self.transport,
            expiration_margin=self.expiration_margin,
            metadata_host=self.config.metadata_host,
        )


def _read_credentials_file(path: str, env: CredentialsEnvironment) -> bytes:
    try:
        return env.read_bytes(path)
    except OSError as e:
        # Missing and unreadable files are reported the same way
        raise ConfigurationError(
            f"Cannot open credentials file {path}",
            cause=e,
            context={"path": path},
        ) from e


def _credential_type(contents: bytes) -> Optional[str]:
    """
    Return the ``type`` of a JSON credentials document.

    Returns None if the contents are not JSON at all, and "no type given"
    for JSON without a string ``type`` field.
    """
    try:
        document = json.loads(contents.decode("utf-8-sig"))
    except ValueError:
        return None
    if isinstance(document, dict) and isinstance(document.get("type"), str):
        return document["type"]
    return "no type given"


def load_credentials_from_path(
    path: str,
    non_service_account_ok: bool,
    scopes: Optional[Iterable[str]] = None,
    subject: Optional[str] = None,
    env: Optional[CredentialsEnvironment] = None,
    config: Optional[AuthConfig] = None,
    transport: Optional[HttpTransport] = None,
) -> LoadResult:
    """
    Build credentials from the JSON or P12 file at ``path``.

    Args:
        path: Credentials file to load
        non_service_account_ok: Accept authorized_user files
        scopes: Scopes for service account credentials; giving scopes or a
            subject also restricts the search to service accounts
        subject: Account to impersonate through domain-wide delegation
        env: Filesystem accessors (default: the real environment)
        config: Settings applied to the credentials (default: get_config())
        transport: HTTP transport shared by the credentials

    Returns:
        FOUND with the credentials, or NOT_SERVICE_ACCOUNT when the file
        holds authorized_user credentials and only service accounts are
        acceptable

    Raises:
        ConfigurationError: File cannot be read
        UnsupportedCredentialTypeError: JSON ``type`` is not supported
        CredentialsFormatError: JSON or P12 content is invalid
    """
    env = env or CredentialsEnvironment()
    builder = _CredentialsBuilder(config, transport)
    contents = _read_credentials_file(path, env)

    cred_type = _credential_type(contents)
    if cred_type is None:
        credentials: Credentials = builder.service_account_p12(
            contents, path, scopes, subject
        )
    elif cred_type == "authorized_user":
        if not non_service_account_ok or scopes is not None or subject is not None:
            log_with_context(
                logger,
                logging.INFO,
                "Credentials file is not a service account, continuing search",
                path=path,
                credential_type=cred_type,
            )
            return LoadResult(LoadStatus.NOT_SERVICE_ACCOUNT, path=path)
        credentials = builder.authorized_user(contents, path)
    elif cred_type == "service_account":
        credentials = builder.service_account_json(contents, path, scopes, subject)
    else:
        raise UnsupportedCredentialTypeError(path, cred_type)

    log_with_context(
        logger,
        logging.DEBUG,
        "Loaded credentials file",
        path=path,
        credential_type=credentials.credential_type,
    )
    return LoadResult(LoadStatus.FOUND, credentials=credentials, path=path)


def maybe_load_credentials_from_adc_paths(
    non_service_account_ok: bool,
    scopes: Optional[Iterable[str]] = None,
    subject: Optional[str] = None,
    env: Optional[CredentialsEnvironment] = None,
    config: Optional[AuthConfig] = None,
    transport: Optional[HttpTransport] = None,
) -> LoadResult:
    """
    Load credentials from the ADC environment variable or well-known path.

    Only one path is ever tried: the environment variable wins when set.
    A set environment variable must load; a well-known path is skipped if
    no file exists there.

    Returns:
        NOT_FOUND when neither path applies, otherwise the result of
        load_credentials_from_path()

    Raises:
        Whatever load_credentials_from_path() raises for the chosen path
    """
    env = env or CredentialsEnvironment()

    path = env.adc_file_path_from_env_var()
    source = "env_var"
    if path is None:
        path = env.adc_file_path_from_well_known_path()
        source = "well_known_path"
        if path is None or not env.path_exists(path):
            log_with_context(
                logger, logging.DEBUG, "No ADC file found", path=path, source=source
            )
            return LoadResult(LoadStatus.NOT_FOUND, path=path)

    audit = get_audit_logger()
    try:
        result = load_credentials_from_path(
            path,
            non_service_account_ok,
            scopes=scopes,
            subject=subject,
            env=env,
            config=config,
            transport=transport,
        )
    except CredentialsError as e:
        log_exception(
            logger,
            e,
            "Failed to load ADC file",
            level=logging.WARNING,
            include_traceback=False,
            path=path,
            source=source,
        )
        audit.log_credential_event(
            event_type=AuditEventType.CRED_INVALID,
            success=False,
            source=source,
            path=path,
            error_message=str(e),
        )
        raise

    if result.found:
        audit.log_credential_event(
            event_type=AuditEventType.CRED_RESOLVED,
            success=True,
            source=source,
            credential_type=result.credentials.credential_type,
            path=path,
        )
    return result


def google_default_credentials(
    env: Optional[CredentialsEnvironment] = None,
    config: Optional[AuthConfig] = None,
    transport: Optional[HttpTransport] = None,
) -> Credentials:
    """
    Resolve Application Default Credentials.

    Usage:
        credentials = google_default_credentials()
        session.headers["Authorization"] = credentials.authorization_header()

    Raises:
        CredentialsNotFoundError: No source applied
        CredentialsError: An ADC file was chosen but could not be loaded
    """
    env = env or CredentialsEnvironment()
    result = maybe_load_credentials_from_adc_paths(
        True, env=env, config=config, transport=transport
    )
    if result.found:
        return result.credentials

    audit = get_audit_logger()
    if env.on_compute_engine():
        log_with_context(
            logger,
            logging.INFO,
            "Running on Compute Engine, using metadata server credentials",
            source="gce",
        )
        credentials = _CredentialsBuilder(config, transport).compute_engine()
        audit.log_credential_event(
            event_type=AuditEventType.CRED_RESOLVED,
            success=True,
            source="gce",
            credential_type=credentials.credential_type,
        )
        return credentials

    message = (
        "Could not automatically determine credentials. For more "
        f"information, please see {ADC_LINK}"
    )
    log_with_context(logger, logging.WARNING, "No default credentials found")
    audit.log_credential_event(
        event_type=AuditEventType.CRED_NOT_FOUND,
        success=False,
        error_message=message,
    )
    raise CredentialsNotFoundError(message)


def create_anonymous_credentials() -> AnonymousCredentials:
    return AnonymousCredentials()


def create_authorized_user_credentials_from_json_file_path(
    path: str,
    env: Optional[CredentialsEnvironment] = None,
    config: Optional[AuthConfig] = None,
    transport: Optional[HttpTransport] = None,
) -> AuthorizedUserCredentials:
    """Build authorized user credentials from a JSON file."""
    contents = _read_credentials_file(path, env or CredentialsEnvironment())
    return _CredentialsBuilder(config, transport).authorized_user(contents, path)


def create_authorized_user_credentials_from_json_contents(
    contents: str,
    config: Optional[AuthConfig] = None,
    transport: Optional[HttpTransport] = None,
) -> AuthorizedUserCredentials:
    """Build authorized user credentials from an in-memory JSON document."""
    return _CredentialsBuilder(config, transport).authorized_user(
        contents.encode("utf-8"), MEMORY_SOURCE
    )


def create_service_account_credentials_from_file_path(
    path: str,
    scopes: Optional[Iterable[str]] = None,
    subject: Optional[str] = None,
    env: Optional[CredentialsEnvironment] = None,
    config: Optional[AuthConfig] = None,
    transport: Optional[HttpTransport] = None,
) -> ServiceAccountCredentials:
    """
    Build service account credentials from a JSON or P12 key file.

    The file is tried as JSON first, then as P12; a file that is neither
    fails with the P12 error ("Invalid credentials file <path>").
    """
    env = env or CredentialsEnvironment()
    try:
        return create_service_account_credentials_from_json_file_path(
            path, scopes, subject, env=env, config=config, transport=transport
        )
    except ConfigurationError:
        raise
    except CredentialsError as e:
        log_with_context(
            logger,
            logging.DEBUG,
            "Not a JSON service account key, trying P12",
            path=path,
            error_message=str(e),
        )
    return create_service_account_credentials_from_p12_file_path(
        path, scopes, subject, env=env, config=config, transport=transport
    )


def create_service_account_credentials_from_json_file_path(
    path: str,
    scopes: Optional[Iterable[str]] = None,
    subject: Optional[str] = None,
    env: Optional[CredentialsEnvironment] = None,
    config: Optional[AuthConfig] = None,
    transport: Optional[HttpTransport] = None,
) -> ServiceAccountCredentials:
    contents = _read_credentials_file(path, env or CredentialsEnvironment())
    return _CredentialsBuilder(config, transport).service_account_json(
        contents, path, scopes, subject
    )


def create_service_account_credentials_from_p12_file_path(
    path: str,
    scopes: Optional[Iterable[str]] = None,
    subject: Optional[str] = None,
    env: Optional[CredentialsEnvironment] = None,
    config: Optional[AuthConfig] = None,
    transport: Optional[HttpTransport] = None,
) -> ServiceAccountCredentials:
    contents = _read_credentials_file(path, env or CredentialsEnvironment())
    return _CredentialsBuilder(config, transport).service_account_p12(
        contents, path, scopes, subject
    )


def create_service_account_credentials_from_json_contents(
    contents: str,
    scopes: Optional[Iterable[str]] = None,
    subject: Optional[str] = None,
    config: Optional[AuthConfig] = None,
    transport: Optional[HttpTransport] = None,
) -> ServiceAccountCredentials:
    return _CredentialsBuilder(config, transport).service_account_json(
        contents.encode("utf-8"), MEMORY_SOURCE, scopes, subject
    )


def create_service_account_credentials_from_default_paths(
    scopes: Optional[Iterable[str]] = None,
    subject: Optional[str] = None,
    env: Optional[CredentialsEnvironment] = None,
    config: Optional[AuthConfig] = None,
    transport: Optional[HttpTransport] = None,
) -> Credentials:
    """
    Load service account credentials from the ADC paths only.

    Authorized user files are skipped rather than rejected; if no service
    account file is found the search ends here, without the metadata check.

    Raises:
        CredentialsNotFoundError: No service account file at the ADC paths
    """
    result = maybe_load_credentials_from_adc_paths(
        False,
        scopes=scopes,
        subject=subject,
        env=env,
        config=config,
        transport=transport,
    )
    if result.found:
        return result.credentials

    message = (
        "Could not create service account credentials using Application "
        f"Default Credentials paths. For more information, please see {ADC_LINK}"
    )
    get_audit_logger().log_credential_event(
        event_type=AuditEventType.CRED_NOT_FOUND,
        success=False,
        path=result.path,
        error_message=message,
    )
    raise CredentialsNotFoundError(message, context={"path": result.path})


def create_compute_engine_credentials(
    service_account_email: str = DEFAULT_SERVICE_ACCOUNT,
    config: Optional[AuthConfig] = None,
    transport: Optional[HttpTransport] = None,
) -> ComputeEngineCredentials:
    return _CredentialsBuilder(config, transport).compute_engine(
        service_account_email
    )
