"""
Signing key cache backed by the identity provider's JWKS endpoint.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx
from jose import jwk
from jose.exceptions import JWKError

from shared.errors import FetchUnavailable, KeyNotFound, KeyResolutionFailed, RateLimited
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .limiter import RefreshLimiter

SIGNING_ALGORITHM = "RS256"


@dataclass(frozen=True)
class SigningKey:
    """A published public key and the identifier tokens reference it by."""

    key_id: str
    public_key: Any


@dataclass(frozen=True)
class KeyCacheEntry:
    """A cached key together with the time it was fetched."""

    key: SigningKey
    fetched_at: float


class SigningKeyCache:
    """Process-wide cache of signing keys keyed by ``kid``.

    Lookups that hit a fresh entry never touch the network. A miss or an
    expired entry triggers a refresh of the whole key set. At most one
    refresh is in flight: concurrent misses await the same task and share
    its result or its failure. Refreshes are throttled by a shared
    ``RefreshLimiter``.
    """

    def __init__(
        self,
        jwks_url: str,
        *,
        cache_ttl: float = 24 * 60 * 60,
        refresh_limiter: Optional[RefreshLimiter] = None,
        fetch_timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.jwks_url = jwks_url
        self.cache_ttl = cache_ttl
        self.fetch_timeout = fetch_timeout
        self.refresh_limiter = refresh_limiter or RefreshLimiter(clock=clock)
        self.metrics = metrics
        self.logger = get_logger("auth.jwks")

        self._transport = transport
        self._clock = clock
        self._entries: Dict[str, KeyCacheEntry] = {}
        self._inflight: Optional["asyncio.Task[None]"] = None
        self._last_error: Optional[KeyResolutionFailed] = None

    @property
    def cached_key_ids(self) -> List[str]:
        """Identifiers of the keys currently held, fresh or not."""
        return sorted(self._entries)

    async def get_key(self, kid: str) -> SigningKey:
        """Return the signing key for ``kid``, refreshing the key set on a miss."""
        entry = self._lookup(kid)
        if entry is not None:
            return entry.key

        await self._shared_refresh()

        entry = self._lookup(kid)
        if entry is None:
            self.logger.warning("Key not found", kid=kid, available=self.cached_key_ids)
            raise KeyNotFound("Signing key not found", details={"kid": kid})
        return entry.key

    async def warmup(self) -> None:
        """Eagerly load the key set so the first request does not pay the cost."""
        await self._shared_refresh()

    async def check_health(self) -> str:
        """Return 'ok' if fresh keys are held or can be fetched, otherwise 'error'.

        After a failed refresh the health check only probes again once the
        refresh window is empty, so it never competes with token lookups
        for the refresh budget during an outage.
        """
        now = self._clock()
        if any(now - entry.fetched_at < self.cache_ttl for entry in self._entries.values()):
            return "ok"

        limiter = self.refresh_limiter
        if self._last_error is not None and limiter.remaining < limiter.max_attempts:
            return "error"

        try:
            await self.warmup()
            return "ok"
        except KeyResolutionFailed as exc:
            self.logger.error("JWKS health check failed", error=str(exc))
            return "error"

    def clear_cache(self) -> None:
        """Drop every cached key."""
        self._entries = {}
        self.logger.info("JWKS cache cleared")

    def _lookup(self, kid: str) -> Optional[KeyCacheEntry]:
        entry = self._entries.get(kid)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at >= self.cache_ttl:
            self._entries.pop(kid, None)
            self.logger.debug("Signing key expired", kid=kid)
            return None
        return entry

    async def _shared_refresh(self) -> None:
        """Join the in-flight refresh, starting one if none is running."""
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._tracked_refresh())
        await asyncio.shield(self._inflight)

    async def _tracked_refresh(self) -> None:
        try:
            await self._refresh()
        except KeyResolutionFailed as exc:
            self._last_error = exc
            raise
        else:
            self._last_error = None
        finally:
            self._inflight = None

    async def _refresh(self) -> None:
        """Fetch the key set and replace the cache contents."""
        if not self.refresh_limiter.try_acquire():
            self._record_refresh("rate_limited")
            raise RateLimited(
                "Signing key refresh rate limit exceeded",
                details={"retry_after": round(self.refresh_limiter.retry_after(), 3)},
            )

        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.fetch_timeout, transport=self._transport) as client:
                response = await client.get(self.jwks_url)
                response.raise_for_status()
                payload = response.json()
        except httpx.TimeoutException as exc:
            self._record_refresh("timeout", time.perf_counter() - started)
            self.logger.error("JWKS fetch timed out", url=self.jwks_url, timeout=self.fetch_timeout)
            raise FetchUnavailable("Signing key endpoint timed out", details={"url": self.jwks_url}) from exc
        except httpx.HTTPError as exc:
            self._record_refresh("error", time.perf_counter() - started)
            self.logger.error("Failed to fetch JWKS", url=self.jwks_url, error=str(exc))
            raise FetchUnavailable("Signing key endpoint unavailable", details={"url": self.jwks_url}) from exc
        except ValueError as exc:
            self._record_refresh("error", time.perf_counter() - started)
            self.logger.error("JWKS response is not JSON", url=self.jwks_url)
            raise FetchUnavailable("Signing key endpoint returned an invalid document") from exc

        keys = payload.get("keys") if isinstance(payload, dict) else None
        if not isinstance(keys, list):
            self._record_refresh("error", time.perf_counter() - started)
            raise FetchUnavailable("JWKS response missing 'keys' array")

        fetched_at = self._clock()
        entries: Dict[str, KeyCacheEntry] = {}
        for key_data in keys:
            signing_key = self._parse_key(key_data)
            if signing_key is not None:
                entries[signing_key.key_id] = KeyCacheEntry(key=signing_key, fetched_at=fetched_at)

        self._entries = entries
        self._record_refresh("success", time.perf_counter() - started)
        self.logger.info("JWKS refreshed successfully", keys_count=len(entries))

    def _parse_key(self, key_data: Any) -> Optional[SigningKey]:
        """Build a SigningKey from one JWK, or skip it if unusable for RS256."""
        if not isinstance(key_data, dict):
            return None

        kid = key_data.get("kid")
        if not isinstance(kid, str) or not kid:
            self.logger.warning("Skipping JWK without key id")
            return None
        if key_data.get("kty") != "RSA" or key_data.get("use", "sig") != "sig":
            self.logger.debug("Skipping non RSA signing key", kid=kid, kty=key_data.get("kty"))
            return None
        if not all(isinstance(key_data.get(part), str) for part in ("n", "e")):
            self.logger.warning("Skipping JWK without modulus or exponent", kid=kid)
            return None

        try:
            public_key = jwk.construct(key_data, algorithm=SIGNING_ALGORITHM)
        except (JWKError, ValueError, TypeError) as exc:
            self.logger.warning("Skipping unparseable JWK", kid=kid, error=str(exc))
            return None
        return SigningKey(key_id=kid, public_key=public_key)

    def _record_refresh(self, status: str, duration: Optional[float] = None) -> None:
        if self.metrics is not None:
            self.metrics.record_jwks_refresh(status, duration)
