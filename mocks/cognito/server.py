"""
Mock Cognito user pool publishing a JWKS and minting signed dev tokens.

Point the services at it with
``TASKHUB_JWKS_URL_OVERRIDE=http://localhost:9229/<pool-id>/.well-known/jwks.json``.
Tokens carry the real-looking issuer for the configured region and pool so
issuer checks pass unchanged.
"""

from typing import Dict, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from shared.config import BaseConfig
from shared.logging import get_logger
from shared.test_helpers import MockTokenGenerator, SigningKeyPair, TestIdentity


class DevTokenRequest(BaseModel):
    """Request a token for one of the mock users."""
    username: str
    expires_in: int = 3600


class MockCognitoServer:
    """Mock Cognito user pool implementation."""

    def __init__(self, config: Optional[BaseConfig] = None, port: int = 9229):
        self.port = port
        self.config = config or BaseConfig()
        self.logger = get_logger("mock.cognito")
        self.app = FastAPI(title="Mock Cognito", version="1.0.0")

        self.pool_id = self.config.cognito_user_pool_id
        self.issuer = self.config.issuer_uri

        # Mock users
        self.users: Dict[str, TestIdentity] = {
            "john.doe": TestIdentity(subject="user1", email="john.doe@example.com", name="John Doe"),
            "jane.smith": TestIdentity(subject="user2", email="jane.smith@example.com", name="Jane Smith"),
            "admin": TestIdentity(subject="admin", email="admin@example.com", name="Admin", role="ADMIN"),
        }

        self._generation = 1
        self.key_pair = SigningKeyPair(kid=f"mock-key-{self._generation}")

        self._setup_routes()

    def _setup_routes(self):
        """Set up mock user pool routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "mock-cognito",
                "message": "Mock Cognito user pool for TaskHub",
                "version": "1.0.0",
                "pool_id": self.pool_id,
                "issuer": self.issuer
            }

        @self.app.get("/{pool_id}/.well-known/jwks.json")
        async def jwks_endpoint(pool_id: str):
            """JWKS endpoint."""
            self._check_pool(pool_id)
            return {"keys": [self.key_pair.jwk()]}

        @self.app.post("/{pool_id}/dev/token")
        async def dev_token(pool_id: str, request: DevTokenRequest):
            """Mint an access token for a mock user. Local development only."""
            self._check_pool(pool_id)

            identity = self.users.get(request.username)
            if identity is None:
                raise HTTPException(status_code=404, detail="User not found")

            token = MockTokenGenerator(self.key_pair, issuer=self.issuer).generate_access_token(
                identity, expires_in=request.expires_in
            )
            self.logger.info("Issued dev token", username=request.username, kid=self.key_pair.kid)
            return {"access_token": token, "token_type": "Bearer", "expires_in": request.expires_in}

        @self.app.post("/{pool_id}/dev/rotate-keys")
        async def rotate_keys(pool_id: str):
            """Replace the signing key, as a real pool rotation would."""
            self._check_pool(pool_id)
            self._generation += 1
            self.key_pair = SigningKeyPair(kid=f"mock-key-{self._generation}")
            self.logger.info("Rotated signing key", kid=self.key_pair.kid)
            return {"kid": self.key_pair.kid}

        @self.app.get("/users")
        async def list_users():
            """List mock users."""
            return {
                "users": [
                    {"username": username, "sub": identity.subject, "email": identity.email, "role": identity.role}
                    for username, identity in self.users.items()
                ]
            }

    def _check_pool(self, pool_id: str) -> None:
        if pool_id != self.pool_id:
            raise HTTPException(status_code=404, detail="User pool not found")


def create_app(config: Optional[BaseConfig] = None):
    """Create mock Cognito application."""
    server = MockCognitoServer(config=config)
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=9229)
