"""
Token signature verification for the identity provider's access tokens.
"""

import time
from typing import Any, Dict, Optional

from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError, JWTError
from pydantic import BaseModel

from shared.errors import (
    AuthenticationError,
    Expired,
    IssuerMismatch,
    MalformedToken,
    NotYetValid,
    SignatureInvalid,
)
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..jwks.client import SIGNING_ALGORITHM, SigningKeyCache

VerifiedClaims = Dict[str, Any]


class TokenVerificationRequest(BaseModel):
    """Request model for token verification."""
    token: str


class SignatureVerifier:
    """Verifies signature, issuer and time claims of a bearer token.

    The token is parsed without trusting its contents, its ``kid`` is
    resolved through the signing key cache, and ``jwt.decode`` checks the
    RS256 signature, the issuer and ``exp``/``nbf``/``iat``. Checks run
    cheapest first and the first failure is terminal.
    """

    def __init__(
        self,
        key_cache: SigningKeyCache,
        issuer: str,
        *,
        leeway: int = 0,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.key_cache = key_cache
        self.issuer = issuer
        self.leeway = leeway
        self.metrics = metrics
        self.logger = get_logger("auth.validator")

    async def verify(self, raw_token: str) -> VerifiedClaims:
        """Verify ``raw_token`` and return its claims unchanged."""
        try:
            claims = await self._verify(raw_token)
        except AuthenticationError as exc:
            self._record(exc.code.lower())
            self.logger.debug("Token rejected", code=exc.code, error=exc.message)
            raise

        self._record("valid")
        self.logger.debug("Token validated successfully", sub=claims.get("sub"))
        return claims

    async def _verify(self, raw_token: str) -> VerifiedClaims:
        if not isinstance(raw_token, str) or not raw_token.strip():
            raise MalformedToken("Token is empty")
        token = raw_token.strip()

        try:
            header = jwt.get_unverified_header(token)
            unverified = jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise MalformedToken("Token could not be parsed", details={"error": str(exc)}) from exc

        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            raise MalformedToken("Token does not contain key ID")

        signing_key = await self.key_cache.get_key(kid)

        try:
            claims = jwt.decode(
                token,
                signing_key.public_key,
                algorithms=[SIGNING_ALGORITHM],
                issuer=self.issuer,
                options={"verify_aud": False, "leeway": self.leeway},
            )
        except (ExpiredSignatureError, JWTClaimsError) as exc:
            # Signature already verified; unverified claims are authentic here.
            raise self._claims_failure(unverified, exc) from exc
        except JWTError as exc:
            raise SignatureInvalid("Token signature verification failed", details={"kid": kid}) from exc

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise MalformedToken("Token missing subject claim")

        return claims

    def _claims_failure(self, claims: VerifiedClaims, exc: JWTError) -> AuthenticationError:
        """Translate a jose claim failure, reporting the issuer first."""
        issuer = claims.get("iss")
        if issuer != self.issuer:
            return IssuerMismatch(
                "Token issuer does not match the identity provider",
                details={"expected": self.issuer, "actual": issuer},
            )
        if isinstance(exc, ExpiredSignatureError):
            return Expired("Token has expired", details={"exp": claims.get("exp")})

        nbf = claims.get("nbf")
        if isinstance(nbf, (int, float)) and nbf > time.time() + self.leeway:
            return NotYetValid("Token is not valid yet", details={"nbf": nbf})
        return MalformedToken("Token claims are invalid", details={"error": str(exc)})

    def _record(self, status: str) -> None:
        if self.metrics is not None:
            self.metrics.record_token_validation(status)
