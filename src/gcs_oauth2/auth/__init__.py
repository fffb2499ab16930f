"""
Authentication module.

Resolves credentials and produces OAuth2 authorization headers.

Components:
    - TemporaryToken / RefreshingCredentialsWrapper: token cache with a
      safety margin and single-flight refresh
    - Parsers for authorized_user, service_account (JSON and P12) files and
      for token / metadata server responses
    - Credential kinds: anonymous, authorized user, service account,
      Compute Engine
    - google_default_credentials(): Application Default Credentials chain
"""

from .authorized_user import AuthorizedUserCredentials
from .compute_engine import ComputeEngineCredentials
from .credentials import AnonymousCredentials, Credentials, RefreshingCredentials
from .default_credentials import (
    LoadResult,
    LoadStatus,
    create_anonymous_credentials,
    create_authorized_user_credentials_from_json_contents,
    create_authorized_user_credentials_from_json_file_path,
    create_compute_engine_credentials,
    create_service_account_credentials_from_default_paths,
    create_service_account_credentials_from_file_path,
    create_service_account_credentials_from_json_contents,
    create_service_account_credentials_from_json_file_path,
    create_service_account_credentials_from_p12_file_path,
    google_default_credentials,
    load_credentials_from_path,
    maybe_load_credentials_from_adc_paths,
)
from .parsers import AuthorizedUserInfo, ServiceAccountInfo, ServiceAccountMetadata
from .platform import CredentialsEnvironment, running_on_compute_engine_vm
from .service_account import ServiceAccountCredentials
from .token_cache import RefreshingCredentialsWrapper, TemporaryToken

__all__ = [
    "AnonymousCredentials",
    "AuthorizedUserCredentials",
    "AuthorizedUserInfo",
    "ComputeEngineCredentials",
    "Credentials",
    "CredentialsEnvironment",
    "LoadResult",
    "LoadStatus",
    "RefreshingCredentials",
    "RefreshingCredentialsWrapper",
    "ServiceAccountCredentials",
    "ServiceAccountInfo",
    "ServiceAccountMetadata",
    "TemporaryToken",
    "create_anonymous_credentials",
    "create_authorized_user_credentials_from_json_contents",
    "create_authorized_user_credentials_from_json_file_path",
    "create_compute_engine_credentials",
    "create_service_account_credentials_from_default_paths",
    "create_service_account_credentials_from_file_path",
    "create_service_account_credentials_from_json_contents",
    "create_service_account_credentials_from_json_file_path",
    "create_service_account_credentials_from_p12_file_path",
    "google_default_credentials",
    "load_credentials_from_path",
    "maybe_load_credentials_from_adc_paths",
    "running_on_compute_engine_vm",
]
