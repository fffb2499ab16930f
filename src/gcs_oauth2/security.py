"""
Redaction of OAuth2 secrets before they reach logs or exception text.

Token endpoints echo request bodies in errors, and credential files carry
PEM keys and refresh tokens; both pass through here on the way to a log.
"""

import re
from typing import List, Pattern, Tuple
from urllib.parse import urlsplit, urlunsplit

REDACTED = "[REDACTED]"

# Query string keys whose values are secrets
SENSITIVE_PARAMS = frozenset(
    {
        "access_token",
        "assertion",
        "client_secret",
        "refresh_token",
        "token",
        "key",
        "sig",
        "signature",
    }
)

_SECRET_JSON_FIELDS = "access_token|refresh_token|client_secret|id_token|private_key"
_SECRET_FORM_FIELDS = "access_token|refresh_token|client_secret|assertion"

SENSITIVE_PATTERNS: List[Tuple[Pattern, str]] = [
    (
        re.compile(
            r"-----BEGIN [A-Z ]*PRIVATE KEY-----.*?-----END [A-Z ]*PRIVATE KEY-----",
            re.DOTALL,
        ),
        "[REDACTED PRIVATE KEY]",
    ),
    (re.compile(r"bearer\s+[\w\-.~+/]+=*", re.IGNORECASE), f"Bearer {REDACTED}"),
    (
        re.compile(rf'"({_SECRET_JSON_FIELDS})"\s*:\s*"[^"]*"'),
        rf'"\1": "{REDACTED}"',
    ),
    # Python dict reprs, as embedded by validation errors
    (
        re.compile(rf"'({_SECRET_JSON_FIELDS})'\s*:\s*'[^']*'"),
        rf"'\1': '{REDACTED}'",
    ),
    (
        re.compile(rf"({_SECRET_FORM_FIELDS})=[^&\s\"']+", re.IGNORECASE),
        rf"\1={REDACTED}",
    ),
]

_URL_PATTERN = re.compile(r'https?://[^\s"\'<>]+')


def _redact_param(param: str) -> str:
    name, sep, _ = param.partition("=")
    if sep and name.lower() in SENSITIVE_PARAMS:
        return f"{name}={REDACTED}"
    return param


def sanitize_url(url: str) -> str:
    """
    Replace the values of secret query parameters with [REDACTED].

    Metadata server and token endpoint URLs normally carry no secrets, but
    a caller-supplied token_uri might.
    """
    if not url:
        return url
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.query:
        return url
    query = "&".join(_redact_param(p) for p in parts.query.split("&"))
    return urlunsplit(parts._replace(query=query))


def sanitize_error_message(msg: str, max_length: int = 500) -> str:
    """
    Scrub keys, tokens and secret URL parameters from an error message.

    Args:
        msg: Message text, possibly embedding an endpoint response body
        max_length: Longer results are cut and end in "..."

    Returns:
        Redacted message
    """
    if not msg:
        return msg

    for pattern, replacement in SENSITIVE_PATTERNS:
        msg = pattern.sub(replacement, msg)
    msg = _URL_PATTERN.sub(lambda m: sanitize_url(m.group(0)), msg)

    if len(msg) > max_length:
        msg = msg[: max_length - 3] + "..."
    return msg
