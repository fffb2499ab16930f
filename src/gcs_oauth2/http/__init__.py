"""
HTTP transport module.

Provides the blocking request/response seam used by credential refresh:
    - HttpResponse: status, headers and body of one exchange
    - HttpTransport: protocol every transport satisfies
    - RequestsTransport: default implementation over requests.Session
"""

from gcs_oauth2.http.transport import (
    DEFAULT_TIMEOUT_SECONDS,
    HttpResponse,
    HttpTransport,
    RequestsTransport,
)

__all__ = [
    "HttpResponse",
    "HttpTransport",
    "RequestsTransport",
    "DEFAULT_TIMEOUT_SECONDS",
]
