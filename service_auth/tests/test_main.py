"""
Tests for Auth service.
"""

import pytest
from fastapi.testclient import TestClient

from service_auth.app.main import create_app
from shared.config import get_config
from shared.test_helpers import (
    ADMIN,
    ALICE,
    TEST_ISSUER,
    JWKSEndpoint,
    MockTokenGenerator,
    SigningKeyPair,
    test_environment,
)


@pytest.fixture(scope="module")
def key_pair():
    return SigningKeyPair(kid="auth-key")


@pytest.fixture
def endpoint(key_pair):
    return JWKSEndpoint(key_pairs=[key_pair])


@pytest.fixture
def tokens(key_pair):
    return MockTokenGenerator(key_pair)


@pytest.fixture
def client(endpoint):
    """Create test client."""
    config = get_config("auth", 8010, **test_environment.get_config_overrides())
    app = create_app(config=config, transport=endpoint.transport)
    return TestClient(app)


def test_root_endpoint(client):
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "auth"
    assert data["issuer"] == TEST_ISSUER
    assert data["version"] == "1.0.0"


def test_health_check(client):
    """Test health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "auth"
    assert data["status"] == "ok"
    assert data["dependencies"] == {"jwks": "ok"}


def test_health_check_degraded(client, endpoint):
    """Key set outage degrades health."""
    endpoint.status_code = 503
    data = client.get("/health").json()
    assert data["status"] == "degraded"
    assert data["dependencies"] == {"jwks": "error"}


def test_verify_token_endpoint(client, tokens):
    """A valid token is described with its Principal."""
    token = tokens.generate_access_token(ADMIN)
    response = client.post("/auth/verify", json={"token": token})
    assert response.status_code == 200
    data = response.json()
    assert data["valid"] is True
    assert data["principal"] == {
        "subject": ADMIN.subject,
        "email": ADMIN.email,
        "name": ADMIN.name,
        "role": "ADMIN"
    }
    assert data["claims"]["iss"] == TEST_ISSUER


def test_verify_expired_token(client, tokens):
    """Verification failures are reported, not raised."""
    token = tokens.generate_access_token(ALICE, expires_in=-60)
    response = client.post("/auth/verify", json={"token": token})
    assert response.status_code == 200
    data = response.json()
    assert data["valid"] is False
    assert data["code"] == "TOKEN_EXPIRED"


def test_verify_requires_body(client):
    """Missing body is a validation error."""
    response = client.post("/auth/verify")
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_whoami_authenticated(client, tokens):
    token = tokens.generate_access_token(ALICE)
    response = client.get("/auth/whoami", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    data = response.json()
    assert data["subject"] == ALICE.subject
    assert data["role"] == "USER"
    assert data["authority"] == "ROLE_USER"
    assert response.headers["X-Request-ID"]


def test_whoami_anonymous(client):
    response = client.get("/auth/whoami")
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"
    data = response.json()
    assert data["code"] == "AUTHENTICATION_REQUIRED"
    assert data["path"] == "/auth/whoami"


def test_whoami_expired_token_reports_reason(client, tokens):
    token = tokens.generate_access_token(ALICE, expires_in=-60)
    response = client.get("/auth/whoami", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["details"] == {"reason": "TOKEN_EXPIRED"}


def test_metrics_endpoint(client, tokens):
    client.post("/auth/verify", json={"token": tokens.generate_access_token(ALICE)})
    response = client.get("/metrics")
    assert response.status_code == 200
    assert 'token_validations_total{status="valid"} 1.0' in response.text
    assert "jwks_refresh_total" in response.text


def test_jwks_status(client, tokens, key_pair):
    before = client.get("/auth/jwks/status").json()
    assert before["cached_keys"] == []
    assert before["refresh_limit"]["remaining"] == 10

    client.post("/auth/verify", json={"token": tokens.generate_access_token(ALICE)})

    after = client.get("/auth/jwks/status").json()
    assert after["jwks_url"] == f"{TEST_ISSUER}/.well-known/jwks.json"
    assert after["cached_keys"] == [key_pair.kid]
    assert after["refresh_limit"]["limit"] == 10
    assert after["refresh_limit"]["remaining"] == 9
