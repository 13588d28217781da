"""
Token validation package.

Validates bearer tokens issued by the upstream identity provider and turns
their claims into a request-scoped Principal:

- ``SignatureVerifier``: structure, key resolution, RS256 signature, issuer
  and expiry checks.
- ``ClaimsExtractor``: subject, email, name and role with documented
  fallbacks.
"""

from .claims import ClaimsExtractor, Principal, Role
from .token_validator import (
    SignatureVerifier,
    TokenVerificationRequest,
    VerifiedClaims,
)

__all__ = [
    "ClaimsExtractor",
    "Principal",
    "Role",
    "SignatureVerifier",
    "TokenVerificationRequest",
    "VerifiedClaims",
]
