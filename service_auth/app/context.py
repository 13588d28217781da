"""
Request-scoped authentication context.

The gate is fail-open: a missing token leaves the request anonymous, and a
token that fails any verification step is logged and also leaves the request
anonymous. Rejection happens later, in the authorization guard, when an
operation needs a Principal and finds none.
"""

from dataclasses import dataclass, field
from typing import Optional
import uuid

from fastapi import FastAPI, Request

from shared.errors import AuthenticationError
from shared.logging import clear_context, get_logger, set_request_id, set_subject
from .validation.claims import ClaimsExtractor, Principal
from .validation.token_validator import SignatureVerifier

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class AuthOutcome:
    """Result of authenticating one request: a Principal, a failure, or neither."""

    principal: Optional[Principal] = None
    failure: Optional[AuthenticationError] = None

    @property
    def authenticated(self) -> bool:
        return self.principal is not None

    @property
    def token_present(self) -> bool:
        return self.principal is not None or self.failure is not None


ANONYMOUS = AuthOutcome()


@dataclass
class RequestContext:
    """Per-request identity handed explicitly to downstream logic."""

    outcome: AuthOutcome = ANONYMOUS
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def principal(self) -> Optional[Principal]:
        return self.outcome.principal


class AuthenticationContext:
    """Attaches a Principal to each request that carries a valid bearer token."""

    def __init__(
        self,
        verifier: SignatureVerifier,
        extractor: Optional[ClaimsExtractor] = None,
    ) -> None:
        self.verifier = verifier
        self.extractor = extractor or ClaimsExtractor()
        self.logger = get_logger("auth.context")

    @staticmethod
    def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
        """Return the token of a ``Bearer <token>`` header, None otherwise."""
        if not authorization or not authorization.startswith(BEARER_PREFIX):
            return None
        token = authorization[len(BEARER_PREFIX):].strip()
        return token or None

    async def authenticate(self, authorization: Optional[str]) -> AuthOutcome:
        """Authenticate an ``Authorization`` header value.

        Authentication-stage failures become an anonymous outcome carrying
        the failure; they are never raised from here.
        """
        token = self.extract_bearer_token(authorization)
        if token is None:
            return ANONYMOUS

        try:
            claims = await self.verifier.verify(token)
        except AuthenticationError as exc:
            self.logger.warning(
                "Authentication failed, continuing unauthenticated",
                code=exc.code,
                error=exc.message,
                details=exc.details,
            )
            return AuthOutcome(failure=exc)

        principal = self.extractor.extract(claims)
        self.logger.debug("Authenticated request", subject=principal.subject, role=principal.role.value)
        return AuthOutcome(principal=principal)

    async def dispatch(self, request: Request, call_next):
        """HTTP middleware: build the RequestContext before the route runs."""
        request_id = set_request_id(request.headers.get("X-Request-ID"))
        outcome = await self.authenticate(request.headers.get("Authorization"))
        request.state.auth = RequestContext(outcome=outcome, request_id=request_id)

        set_subject(outcome.principal.subject if outcome.principal else None)
        try:
            return await call_next(request)
        finally:
            clear_context()

    def install(self, app: FastAPI) -> None:
        """Register the context as HTTP middleware on ``app``."""
        app.middleware("http")(self.dispatch)


def get_request_context(request: Request) -> RequestContext:
    """FastAPI dependency returning the request's authentication context."""
    context = getattr(request.state, "auth", None)
    if isinstance(context, RequestContext):
        return context
    return RequestContext()


def get_principal(request: Request) -> Optional[Principal]:
    """FastAPI dependency returning the Principal, or None when anonymous."""
    return get_request_context(request).principal
