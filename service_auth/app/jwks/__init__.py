"""
Signing key package.

Retrieves and caches the JSON Web Key Set (JWKS) published by the identity
provider so token signatures can be verified without a network call per
request.

Key points:
- Keys are cached per ``kid`` for a fixed TTL (24 hours by default).
- A miss or an expired entry refreshes the whole key set; concurrent misses
  share one in-flight refresh.
- Refreshes are rate limited (10 per minute by default) and fail fast with
  ``RateLimited`` once the ceiling is reached.
- Every fetch is bounded by a timeout and surfaces as ``FetchUnavailable``.
"""

from .client import KeyCacheEntry, SigningKey, SigningKeyCache, SIGNING_ALGORITHM
from .limiter import RefreshLimiter

__all__ = [
    "KeyCacheEntry",
    "RefreshLimiter",
    "SIGNING_ALGORITHM",
    "SigningKey",
    "SigningKeyCache",
]
