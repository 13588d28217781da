"""
Auth service for TaskHub: token introspection over the shared pipeline.
"""

from typing import Optional

import httpx
from fastapi import Depends

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import AuthenticationError, AuthenticationRequired
from .context import RequestContext, get_request_context
from .factory import build_auth_components
from .validation.token_validator import TokenVerificationRequest


class AuthService(BaseService):
    """Auth service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__("auth", 8010, config=config)
        self.components = build_auth_components(self.config, metrics=self.metrics, transport=transport)
        self.components.context.install(self.app)

        self._setup_auth_routes()

    def _setup_auth_routes(self):
        """Set up auth-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "auth",
                "message": "TaskHub - Auth Service",
                "issuer": self.config.issuer_uri,
                "version": "1.0.0"
            }

        @self.app.post("/auth/verify")
        async def verify_token(request: TokenVerificationRequest):
            """Verify a token and describe the Principal it yields."""
            try:
                claims = await self.components.verifier.verify(request.token)
            except AuthenticationError as exc:
                self.logger.info("Token verification failed", code=exc.code, error=exc.message)
                return {
                    "valid": False,
                    "code": exc.code,
                    "error": exc.message
                }

            principal = self.components.extractor.extract(claims)
            return {
                "valid": True,
                "principal": {
                    "subject": principal.subject,
                    "email": principal.email,
                    "name": principal.name,
                    "role": principal.role.value
                },
                "claims": claims
            }

        @self.app.get("/auth/whoami")
        async def whoami(context: RequestContext = Depends(get_request_context)):
            """Return the Principal attached to this request."""
            principal = context.principal
            if principal is None:
                failure = context.outcome.failure
                raise AuthenticationRequired(
                    details={"reason": failure.code} if failure else {}
                )
            return {
                "subject": principal.subject,
                "email": principal.email,
                "name": principal.name,
                "role": principal.role.value,
                "authority": principal.role.authority
            }

        @self.app.get("/auth/jwks/status")
        async def jwks_status():
            """Describe the signing key cache and its refresh budget."""
            key_cache = self.components.key_cache
            return {
                "jwks_url": key_cache.jwks_url,
                "cached_keys": key_cache.cached_key_ids,
                "refresh_limit": key_cache.refresh_limiter.get_state()
            }

    async def _check_dependencies(self):
        """Check auth dependencies."""
        return {"jwks": await self.components.key_cache.check_health()}


def create_app(config: Optional[ServiceConfig] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
    """Create FastAPI application."""
    service = AuthService(config=config, transport=transport)
    return service.app


if __name__ == "__main__":
    service = AuthService()
    service.run()
