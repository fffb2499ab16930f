"""
OAuth2 credentials for Google Cloud Storage clients.

Usage:
    from gcs_oauth2 import google_default_credentials

    credentials = google_default_credentials()
    headers = {"Authorization": credentials.authorization_header()}
"""

from gcs_oauth2.auth import (
    AnonymousCredentials,
    AuthorizedUserCredentials,
    ComputeEngineCredentials,
    Credentials,
    ServiceAccountCredentials,
    google_default_credentials,
)

__version__ = "0.1.0"

__all__ = [
    "AnonymousCredentials",
    "AuthorizedUserCredentials",
    "ComputeEngineCredentials",
    "Credentials",
    "ServiceAccountCredentials",
    "google_default_credentials",
]
