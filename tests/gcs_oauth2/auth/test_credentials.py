"""
Tests for the concrete credential kinds.

Test coverage:
- AnonymousCredentials
- AuthorizedUserCredentials refresh-token exchange
- ServiceAccountCredentials JWT assertion, signing and token exchange
- ComputeEngineCredentials token and account description queries
- Refresh failures (transport errors, non-2xx, malformed bodies)
"""

import base64
import json
from dataclasses import replace
from datetime import timedelta
from urllib.parse import parse_qs

import pytest
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding

from gcs_oauth2.auth.authorized_user import AuthorizedUserCredentials
from gcs_oauth2.auth.compute_engine import ComputeEngineCredentials
from gcs_oauth2.auth.credentials import AnonymousCredentials
from gcs_oauth2.auth.parsers import (
    AuthorizedUserInfo,
    parse_service_account_credentials,
)
from gcs_oauth2.auth.service_account import (
    JWT_BEARER_GRANT_TYPE,
    ServiceAccountCredentials,
)
from gcs_oauth2.config import CLOUD_PLATFORM_SCOPE
from gcs_oauth2.errors import CredentialsFormatError, ProtocolError, TransportError
from gcs_oauth2.http import HttpResponse


def _b64decode(segment):
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


def _decode_jwt(assertion):
    header, claims, signature = assertion.split(".")
    return json.loads(_b64decode(header)), json.loads(_b64decode(claims)), signature


@pytest.fixture
def authorized_user_info():
    return AuthorizedUserInfo(
        client_id="client-id",
        client_secret="client-secret",
        refresh_token="refresh-token",
        token_uri="https://oauth2.example.com/token",
    )


@pytest.fixture
def service_account_info(service_account_document):
    return parse_service_account_credentials(
        json.dumps(service_account_document), "key.json"
    )


class TestAnonymousCredentials:
    """Tests for AnonymousCredentials."""

    def test_empty_header(self):
        """Anonymous access sends no Authorization header."""
        assert AnonymousCredentials().authorization_header() == ""

    def test_credential_type(self):
        """The credential type is reported as anonymous."""
        assert AnonymousCredentials().credential_type == "anonymous"


class TestAuthorizedUserCredentials:
    """Tests for AuthorizedUserCredentials."""

    def test_refresh_request(self, authorized_user_info, fake_transport, token_response, clock):
        """The refresh is a form POST carrying the refresh token grant."""
        fake_transport.queue(token_response("T"))
        credentials = AuthorizedUserCredentials(
            authorized_user_info, transport=fake_transport, clock=clock
        )

        header = credentials.authorization_header()

        assert header == "Bearer T"
        request = fake_transport.requests[0]
        assert request["method"] == "POST"
        assert request["url"] == "https://oauth2.example.com/token"
        assert request["headers"]["Content-Type"] == "application/x-www-form-urlencoded"
        form = parse_qs(request["body"])
        assert form == {
            "grant_type": ["refresh_token"],
            "client_id": ["client-id"],
            "client_secret": ["client-secret"],
            "refresh_token": ["refresh-token"],
        }

    def test_token_cached_until_margin(self, authorized_user_info, fake_transport, token_response, clock):
        """The header is reused until the 500s margin, then refreshed."""
        fake_transport.queue(token_response("T1"))
        fake_transport.queue(token_response("T2"))
        credentials = AuthorizedUserCredentials(
            authorized_user_info, transport=fake_transport, clock=clock
        )

        assert credentials.authorization_header() == "Bearer T1"
        clock.advance(3099)
        assert credentials.authorization_header() == "Bearer T1"
        clock.advance(1)
        assert credentials.authorization_header() == "Bearer T2"
        assert fake_transport.call_count == 2

    def test_error_status(self, authorized_user_info, fake_transport, clock):
        """A rejected refresh raises with the endpoint's body."""
        fake_transport.queue(HttpResponse(400, '{"error":"invalid_grant"}'))
        credentials = AuthorizedUserCredentials(
            authorized_user_info, transport=fake_transport, clock=clock
        )

        with pytest.raises(ProtocolError, match="invalid_grant"):
            credentials.authorization_header()

    def test_principal_is_client_id(self, authorized_user_info, fake_transport):
        """The OAuth client id identifies an end-user credential."""
        credentials = AuthorizedUserCredentials(
            authorized_user_info, transport=fake_transport
        )
        assert credentials.principal == "client-id"
        assert credentials.credential_type == "authorized_user"


class TestServiceAccountCredentials:
    """Tests for ServiceAccountCredentials."""

    def test_header_from_token_endpoint(self, service_account_info, fake_transport, clock):
        """Parsed key file + fake token endpoint yields '<token_type> <access_token>'."""
        fake_transport.queue(
            HttpResponse(200, '{"access_token":"ya29.abc","expires_in":3600,"token_type":"Bearer"}')
        )
        credentials = ServiceAccountCredentials(
            service_account_info, transport=fake_transport, clock=clock
        )

        assert credentials.authorization_header() == "Bearer ya29.abc"
        assert credentials.token_expiration == clock.now + timedelta(seconds=3600)

    def test_token_request(self, service_account_info, fake_transport, token_response, clock):
        """The assertion is exchanged with the jwt-bearer grant at token_uri."""
        fake_transport.queue(token_response())
        credentials = ServiceAccountCredentials(
            service_account_info, transport=fake_transport, clock=clock
        )

        credentials.authorization_header()

        request = fake_transport.requests[0]
        assert request["method"] == "POST"
        assert request["url"] == "https://oauth2.example.com/token"
        form = parse_qs(request["body"])
        assert form["grant_type"] == [JWT_BEARER_GRANT_TYPE]
        assert len(form["assertion"]) == 1

    def test_assertion_claims(self, service_account_info, fake_transport, clock):
        """The JWT carries issuer, audience, default scope and a one-hour lifetime."""
        credentials = ServiceAccountCredentials(
            service_account_info, transport=fake_transport, clock=clock
        )

        header, claims, _ = _decode_jwt(credentials.create_assertion(clock.now))

        issued_at = int(clock.now.timestamp())
        assert header == {"alg": "RS256", "typ": "JWT", "kid": "a1b2c3d4"}
        assert claims == {
            "iss": "robot@test-project.iam.gserviceaccount.com",
            "scope": CLOUD_PLATFORM_SCOPE,
            "aud": "https://oauth2.example.com/token",
            "iat": issued_at,
            "exp": issued_at + 3600,
        }

    def test_assertion_with_scopes_and_subject(self, service_account_info, fake_transport, clock):
        """Explicit scopes are sorted and the subject becomes sub."""
        info = replace(
            service_account_info,
            scopes=frozenset({"scope-b", "scope-a"}),
            subject="user@example.com",
        )
        credentials = ServiceAccountCredentials(info, transport=fake_transport, clock=clock)

        _, claims, _ = _decode_jwt(credentials.create_assertion(clock.now))

        assert claims["scope"] == "scope-a scope-b"
        assert claims["sub"] == "user@example.com"

    def test_assertion_without_key_id(self, service_account_info, fake_transport, clock):
        """No kid header is sent when the key has no id."""
        info = replace(service_account_info, private_key_id=None)
        credentials = ServiceAccountCredentials(info, transport=fake_transport, clock=clock)

        header, _, _ = _decode_jwt(credentials.create_assertion(clock.now))

        assert "kid" not in header

    def test_default_scopes_override(self, service_account_info, fake_transport):
        """Configured default scopes replace cloud-platform."""
        credentials = ServiceAccountCredentials(
            service_account_info,
            transport=fake_transport,
            default_scopes=["https://www.googleapis.com/auth/devstorage.read_only"],
        )
        assert credentials.scopes == frozenset(
            {"https://www.googleapis.com/auth/devstorage.read_only"}
        )

    def test_assertion_signature_verifies(self, service_account_info, rsa_private_key, fake_transport, clock):
        """The RS256 signature verifies with the public key."""
        credentials = ServiceAccountCredentials(
            service_account_info, transport=fake_transport, clock=clock
        )

        assertion = credentials.create_assertion(clock.now)
        signing_input, signature = assertion.rsplit(".", 1)

        rsa_private_key.public_key().verify(
            _b64decode(signature),
            signing_input.encode("ascii"),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )

    def test_sign_blob(self, service_account_info, rsa_private_key, fake_transport):
        """sign_blob produces a PKCS#1 v1.5 SHA-256 signature."""
        credentials = ServiceAccountCredentials(service_account_info, transport=fake_transport)

        signature = credentials.sign_blob(b"payload")

        rsa_private_key.public_key().verify(
            signature, b"payload", padding.PKCS1v15(), hashes.SHA256()
        )
        with pytest.raises(InvalidSignature):
            rsa_private_key.public_key().verify(
                signature, b"tampered", padding.PKCS1v15(), hashes.SHA256()
            )

    def test_account_email_and_key_id(self, service_account_info, fake_transport):
        """Identity accessors mirror the key file."""
        credentials = ServiceAccountCredentials(service_account_info, transport=fake_transport)

        assert credentials.account_email == "robot@test-project.iam.gserviceaccount.com"
        assert credentials.key_id == "a1b2c3d4"

    def test_invalid_private_key(self, service_account_info, fake_transport):
        """An unloadable PEM is a format error."""
        info = replace(service_account_info, private_key="not a key")

        with pytest.raises(CredentialsFormatError, match="private_key"):
            ServiceAccountCredentials(info, transport=fake_transport, source="key.json")

    def test_non_rsa_private_key(self, service_account_info, fake_transport):
        """Only RSA keys can sign assertions."""
        ec_pem = ec.generate_private_key(ec.SECP256R1()).private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("ascii")
        info = replace(service_account_info, private_key=ec_pem)

        with pytest.raises(CredentialsFormatError, match="not an RSA key"):
            ServiceAccountCredentials(info, transport=fake_transport)


class TestComputeEngineCredentials:
    """Tests for ComputeEngineCredentials."""

    TOKEN_URL = (
        "http://metadata.google.internal/computeMetadata/v1/instance/"
        "service-accounts/default/token"
    )

    def test_no_request_at_construction(self, fake_transport):
        """Nothing is fetched until a header is needed."""
        ComputeEngineCredentials(transport=fake_transport)
        assert fake_transport.call_count == 0

    def test_token_request(self, fake_transport, token_response, clock):
        """The token comes from the metadata server with the flavor header."""
        fake_transport.queue(token_response("gce-token"))
        credentials = ComputeEngineCredentials(transport=fake_transport, clock=clock)

        assert credentials.authorization_header() == "Bearer gce-token"
        request = fake_transport.requests[0]
        assert request["method"] == "GET"
        assert request["url"] == self.TOKEN_URL
        assert request["headers"] == {"Metadata-Flavor": "Google"}

    def test_specific_account_and_host(self, fake_transport, token_response):
        """The account email and metadata host shape the token URL."""
        fake_transport.queue(token_response())
        credentials = ComputeEngineCredentials(
            "robot@p.iam.gserviceaccount.com",
            transport=fake_transport,
            metadata_host="localhost:8080",
        )

        credentials.authorization_header()

        assert fake_transport.requests[0]["url"] == (
            "http://localhost:8080/computeMetadata/v1/instance/"
            "service-accounts/robot@p.iam.gserviceaccount.com/token"
        )

    def test_service_account_info(self, fake_transport):
        """Introspection reports email and scopes from the metadata server."""
        fake_transport.queue(
            HttpResponse(200, '{"email":"robot@p.iam.gserviceaccount.com","scopes":["s1","s2"]}')
        )
        credentials = ComputeEngineCredentials(transport=fake_transport)
        assert credentials.account_email == "default"
        assert credentials.scopes == frozenset()

        info = credentials.service_account_info()

        assert info.email == "robot@p.iam.gserviceaccount.com"
        assert credentials.account_email == "robot@p.iam.gserviceaccount.com"
        assert credentials.scopes == frozenset({"s1", "s2"})
        assert fake_transport.requests[0]["url"].endswith(
            "/service-accounts/default/?recursive=true"
        )

    def test_service_account_info_cached(self, fake_transport):
        """Account info is fetched once unless a refresh is requested."""
        fake_transport.queue(HttpResponse(200, '{"email":"a@b","scopes":"x"}'))
        fake_transport.queue(HttpResponse(200, '{"email":"a@b","scopes":["x","y"]}'))
        credentials = ComputeEngineCredentials(transport=fake_transport)

        credentials.service_account_info()
        credentials.service_account_info()
        assert fake_transport.call_count == 1

        refreshed = credentials.service_account_info(refresh=True)
        assert refreshed.scopes == frozenset({"x", "y"})
        assert fake_transport.call_count == 2

    def test_info_query_leaves_token_cache_alone(self, fake_transport, token_response, clock):
        """Introspection does not touch the cached token."""
        fake_transport.queue(token_response("gce-token"))
        fake_transport.queue(HttpResponse(200, '{"email":"a@b","scopes":"x"}'))
        credentials = ComputeEngineCredentials(transport=fake_transport, clock=clock)

        credentials.authorization_header()
        credentials.service_account_info()

        assert credentials.authorization_header() == "Bearer gce-token"
        assert fake_transport.call_count == 2

    def test_malformed_info(self, fake_transport):
        """A bad metadata body is a protocol error naming the fields."""
        fake_transport.queue(HttpResponse(200, '{"email":"a@b"}'))
        credentials = ComputeEngineCredentials(transport=fake_transport)

        with pytest.raises(ProtocolError, match="scopes"):
            credentials.service_account_info()


class TestRefreshFailures:
    """Tests for failures surfaced through authorization_header."""

    def test_transport_error_keeps_token(self, fake_transport, token_response, clock):
        """A network failure surfaces and leaves the old token cached."""
        fake_transport.queue(token_response("first"))
        fake_transport.queue(TransportError("connection refused"))
        fake_transport.queue(token_response("second"))
        credentials = ComputeEngineCredentials(
            transport=fake_transport, clock=clock, expiration_margin=timedelta(0)
        )

        assert credentials.authorization_header() == "Bearer first"
        clock.advance(3600)
        with pytest.raises(TransportError):
            credentials.authorization_header()
        assert credentials.token_expiration is not None

        assert credentials.authorization_header() == "Bearer second"

    def test_malformed_token_body(self, fake_transport, clock):
        """A token body missing required fields is a protocol error."""
        fake_transport.queue(HttpResponse(200, '{"access_token":"T"}'))
        credentials = ComputeEngineCredentials(transport=fake_transport, clock=clock)

        with pytest.raises(ProtocolError) as exc_info:
            credentials.authorization_header()

        assert str(exc_info.value).startswith('{"access_token":"T"}')

    def test_clear_refetches(self, fake_transport, token_response, clock):
        """Clearing the cache forces the next call to refresh."""
        fake_transport.queue(token_response("first"))
        fake_transport.queue(token_response("second"))
        credentials = ComputeEngineCredentials(transport=fake_transport, clock=clock)

        credentials.authorization_header()
        assert credentials.is_expired() is False
        credentials.clear()
        assert credentials.is_expired() is True

        assert credentials.authorization_header() == "Bearer second"
