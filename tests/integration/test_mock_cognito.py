"""
Integration tests running the task manager against the mock Cognito user pool.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from mocks.cognito.server import MockCognitoServer
from service_task_manager.app.main import create_app
from shared.config import BaseConfig, get_config
from shared.test_helpers import TEST_USER_POOL_ID, test_environment


class TestMockCognitoFlow:
    """Key set served over ASGI by the mock user pool."""

    @pytest.fixture
    def overrides(self):
        return dict(
            test_environment.get_config_overrides(),
            jwks_url_override=f"http://mock-cognito/{TEST_USER_POOL_ID}/.well-known/jwks.json",
        )

    @pytest.fixture
    def cognito(self, overrides):
        return MockCognitoServer(config=BaseConfig(**overrides))

    @pytest.fixture
    def cognito_client(self, cognito):
        return TestClient(cognito.app)

    @pytest.fixture
    def task_client(self, cognito, overrides):
        config = get_config("task-manager", 8080, **overrides)
        return TestClient(create_app(config=config, transport=httpx.ASGITransport(app=cognito.app)))

    def _token(self, cognito_client, username: str) -> str:
        response = cognito_client.post(f"/{TEST_USER_POOL_ID}/dev/token", json={"username": username})
        assert response.status_code == 200
        return response.json()["access_token"]

    def test_jwks_published(self, cognito_client, cognito):
        keys = cognito_client.get(f"/{TEST_USER_POOL_ID}/.well-known/jwks.json").json()["keys"]

        assert [key["kid"] for key in keys] == [cognito.key_pair.kid]
        assert keys[0]["kty"] == "RSA"

    def test_unknown_pool(self, cognito_client):
        assert cognito_client.get("/other-pool/.well-known/jwks.json").status_code == 404

    def test_dev_token_opens_task_manager(self, cognito_client, task_client):
        token = self._token(cognito_client, "jane.smith")

        response = task_client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert response.json()["email"] == "jane.smith@example.com"

    def test_admin_dev_token(self, cognito_client, task_client):
        token = self._token(cognito_client, "admin")

        response = task_client.get("/api/users", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200

    def test_rotation_picked_up(self, cognito_client, task_client):
        before = self._token(cognito_client, "john.doe")
        assert task_client.get("/api/users/me", headers={"Authorization": f"Bearer {before}"}).status_code == 200

        cognito_client.post(f"/{TEST_USER_POOL_ID}/dev/rotate-keys")
        after = self._token(cognito_client, "john.doe")

        assert task_client.get("/api/users/me", headers={"Authorization": f"Bearer {after}"}).status_code == 200
        assert task_client.get("/api/users/me", headers={"Authorization": f"Bearer {before}"}).status_code == 401

    def test_unknown_user(self, cognito_client):
        response = cognito_client.post(f"/{TEST_USER_POOL_ID}/dev/token", json={"username": "nobody"})

        assert response.status_code == 404
