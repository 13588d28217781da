"""
Wiring for the token pipeline.
"""

from dataclasses import dataclass
from typing import Optional

import httpx

from shared.config import BaseConfig
from shared.metrics import MetricsCollector
from .context import AuthenticationContext
from .jwks.client import SigningKeyCache
from .jwks.limiter import RefreshLimiter
from .validation.claims import ClaimsExtractor
from .validation.token_validator import SignatureVerifier


@dataclass
class AuthComponents:
    """The assembled pipeline: key cache → verifier → extractor → context."""

    key_cache: SigningKeyCache
    verifier: SignatureVerifier
    extractor: ClaimsExtractor
    context: AuthenticationContext


def build_auth_components(
    config: BaseConfig,
    *,
    metrics: Optional[MetricsCollector] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AuthComponents:
    """Build the authentication pipeline from configuration."""
    key_cache = SigningKeyCache(
        config.jwks_url,
        cache_ttl=config.jwks_cache_ttl_seconds,
        refresh_limiter=RefreshLimiter(
            max_attempts=config.jwks_refresh_limit,
            window_seconds=config.jwks_refresh_window_seconds,
        ),
        fetch_timeout=config.jwks_fetch_timeout_seconds,
        transport=transport,
        metrics=metrics,
    )
    verifier = SignatureVerifier(
        key_cache,
        config.issuer_uri,
        leeway=config.token_clock_skew_seconds,
        metrics=metrics,
    )
    extractor = ClaimsExtractor()
    context = AuthenticationContext(verifier, extractor)
    return AuthComponents(key_cache=key_cache, verifier=verifier, extractor=extractor, context=context)
