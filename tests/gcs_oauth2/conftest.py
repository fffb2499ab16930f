"""
Shared fixtures for gcs_oauth2 tests.

Provides:
- FakeTransport: scripted HttpTransport that records every request
- RSA private key and P12 bundle generated with cryptography
- Credential file documents and a fake CredentialsEnvironment
"""

import json
import threading
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from gcs_oauth2.auth.platform import CredentialsEnvironment
from gcs_oauth2.http import HttpResponse

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
SERVICE_ACCOUNT_ID = "123456789012345678901"


class FakeTransport:
    """HttpTransport returning queued responses and recording requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []
        self._lock = threading.Lock()

    def queue(self, response):
        self.responses.append(response)

    def request(self, method, url, headers=None, body=None, timeout=None):
        with self._lock:
            self.requests.append(
                {"method": method, "url": url, "headers": dict(headers or {}), "body": body}
            )
            if not self.responses:
                raise AssertionError(f"Unexpected request: {method} {url}")
            response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def call_count(self):
        return len(self.requests)


def _token_response(access_token="T", expires_in=3600, token_type="Bearer", status_code=200):
    """Build a token endpoint response."""
    body = {"access_token": access_token, "expires_in": expires_in, "token_type": token_type}
    return HttpResponse(status_code=status_code, payload=json.dumps(body))


class Clock:
    """Settable clock for credential objects."""

    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def token_response():
    """Factory for token endpoint responses."""
    return _token_response


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture(scope="session")
def rsa_private_key():
    """2048-bit RSA key shared by the whole test session."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key):
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


def _build_p12(private_key, common_name=SERVICE_ACCOUNT_ID, password=b"notasecret"):
    """Serialize a key and self-signed certificate as a PKCS#12 bundle."""
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(T0 - timedelta(days=1))
        .not_valid_after(T0 + timedelta(days=3650))
        .sign(private_key, hashes.SHA256())
    )
    return pkcs12.serialize_key_and_certificates(
        b"privatekey",
        private_key,
        certificate,
        None,
        serialization.BestAvailableEncryption(password),
    )


@pytest.fixture
def make_p12():
    """Factory for PKCS#12 bundles with a chosen CN or password."""
    return _build_p12


@pytest.fixture(scope="session")
def p12_bytes(rsa_private_key):
    return _build_p12(rsa_private_key)


@pytest.fixture
def service_account_document(private_key_pem):
    return {
        "type": "service_account",
        "project_id": "test-project",
        "private_key_id": "a1b2c3d4",
        "private_key": private_key_pem,
        "client_email": "robot@test-project.iam.gserviceaccount.com",
        "client_id": "100000000000000000001",
        "token_uri": "https://oauth2.example.com/token",
    }


@pytest.fixture
def authorized_user_document():
    return {
        "type": "authorized_user",
        "client_id": "client-id.apps.googleusercontent.com",
        "client_secret": "client-secret",
        "refresh_token": "1//refresh-token",
    }


class FakeEnvironment:
    """In-memory files and variables behind a CredentialsEnvironment."""

    def __init__(self, environ=None, files=None, on_gce=False, platform="linux"):
        self.environ = dict(environ or {})
        self.files = dict(files or {})
        self.on_gce = on_gce
        self.platform = platform
        self.gce_checks = 0
        self.reads = []

    def _read(self, path):
        self.reads.append(path)
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.files[path]

    def _check_gce(self):
        self.gce_checks += 1
        return self.on_gce

    def build(self):
        return CredentialsEnvironment(
            environ=self.environ,
            platform=self.platform,
            path_exists=lambda path: path in self.files,
            read_bytes=self._read,
            on_compute_engine=self._check_gce,
        )


@pytest.fixture
def fake_env():
    return FakeEnvironment()
