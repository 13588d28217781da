"""
Unit tests for SignatureVerifier.
"""

import base64
import json
import time

import pytest
from jose import jwt

from service_auth.app.jwks.client import SigningKeyCache
from service_auth.app.validation.token_validator import SignatureVerifier
from shared.errors import (
    Expired,
    FetchUnavailable,
    IssuerMismatch,
    KeyNotFound,
    MalformedToken,
    NotYetValid,
    SignatureInvalid,
)
from shared.metrics import MetricsCollector
from shared.test_helpers import (
    ALICE,
    TEST_ISSUER,
    TEST_JWKS_URL,
    JWKSEndpoint,
    MockTokenGenerator,
    SigningKeyPair,
)

@pytest.fixture(scope="module")
def key_pair():
    return SigningKeyPair(kid="key-1")


@pytest.fixture(scope="module")
def impostor_key_pair():
    """Different private key advertising the same kid."""
    return SigningKeyPair(kid="key-1")


class TestSignatureVerifier:
    """Test cases for SignatureVerifier."""

    @pytest.fixture
    def endpoint(self, key_pair):
        return JWKSEndpoint(key_pairs=[key_pair])

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("auth-test")

    @pytest.fixture
    def now(self):
        return int(time.time())

    @pytest.fixture
    def verifier(self, endpoint, metrics):
        """Create SignatureVerifier for the test issuer."""
        cache = SigningKeyCache(TEST_JWKS_URL, transport=endpoint.transport)
        return SignatureVerifier(cache, TEST_ISSUER, metrics=metrics)

    @pytest.fixture
    def tokens(self, key_pair):
        return MockTokenGenerator(key_pair)

    @pytest.fixture
    def claims(self, tokens, now):
        """Valid claims expiring one hour from now."""
        claims = tokens.claims_for(ALICE)
        claims.update(iat=now, exp=now + 3600)
        return claims

    @pytest.mark.asyncio
    async def test_verify_valid_token(self, verifier, tokens, claims, metrics):
        """A valid token yields its claims unchanged."""
        token = tokens.generate_access_token(claims=claims)

        result = await verifier.verify(token)

        assert result == claims
        assert metrics.sample("token_validations_total", status="valid") == 1

    @pytest.mark.asyncio
    async def test_surrounding_whitespace_ignored(self, verifier, tokens, claims):
        token = tokens.generate_access_token(claims=claims)

        result = await verifier.verify(f"  {token}\n")

        assert result["sub"] == ALICE.subject

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw_token", ["", "   ", "abc", "not.a.jwt"])
    async def test_unparseable_token(self, verifier, raw_token):
        """Tokens that are not compact JWS are malformed."""
        with pytest.raises(MalformedToken):
            await verifier.verify(raw_token)

    @pytest.mark.asyncio
    async def test_token_without_kid(self, verifier, tokens, claims, endpoint):
        """A token without a key identifier is malformed and fetches nothing."""
        token = tokens.generate_access_token(claims=claims, kid="")

        with pytest.raises(MalformedToken):
            await verifier.verify(token)

        assert endpoint.requests == 0

    @pytest.mark.asyncio
    async def test_unknown_kid(self, verifier, tokens, claims):
        token = tokens.generate_access_token(claims=claims, kid="rotated-away")

        with pytest.raises(KeyNotFound):
            await verifier.verify(token)

    @pytest.mark.asyncio
    async def test_key_set_unavailable(self, verifier, tokens, claims, endpoint):
        endpoint.status_code = 500
        token = tokens.generate_access_token(claims=claims)

        with pytest.raises(FetchUnavailable):
            await verifier.verify(token)

    @pytest.mark.asyncio
    async def test_signed_by_other_key(self, verifier, impostor_key_pair, claims):
        """A signature by a different key under the same kid is rejected."""
        token = MockTokenGenerator(impostor_key_pair).generate_access_token(claims=claims)

        with pytest.raises(SignatureInvalid):
            await verifier.verify(token)

    @pytest.mark.asyncio
    async def test_tampered_payload(self, verifier, tokens, claims):
        """Changing the payload after signing breaks the signature."""
        header, _, signature = tokens.generate_access_token(claims=claims).split(".")
        forged = dict(claims, **{"custom:role": "ADMIN"})
        payload = base64.urlsafe_b64encode(json.dumps(forged).encode()).rstrip(b"=").decode()

        with pytest.raises(SignatureInvalid):
            await verifier.verify(f"{header}.{payload}.{signature}")

    @pytest.mark.asyncio
    async def test_symmetric_algorithm_rejected(self, verifier, claims):
        """Only RS256 is accepted."""
        token = jwt.encode(claims, "shared-secret", algorithm="HS256", headers={"kid": "key-1"})

        with pytest.raises(SignatureInvalid):
            await verifier.verify(token)

    @pytest.mark.asyncio
    async def test_issuer_mismatch(self, verifier, tokens, claims):
        claims["iss"] = "https://cognito-idp.eu-west-1.amazonaws.com/eu-west-1_Other"
        token = tokens.generate_access_token(claims=claims)

        with pytest.raises(IssuerMismatch):
            await verifier.verify(token)

    @pytest.mark.asyncio
    async def test_expired_token(self, verifier, tokens, claims, metrics, now):
        claims["exp"] = now - 10
        token = tokens.generate_access_token(claims=claims)

        with pytest.raises(Expired):
            await verifier.verify(token)

        assert metrics.sample("token_validations_total", status="token_expired") == 1

    @pytest.mark.asyncio
    async def test_leeway_applied(self, endpoint, tokens, claims, now):
        cache = SigningKeyCache(TEST_JWKS_URL, transport=endpoint.transport)
        verifier = SignatureVerifier(cache, TEST_ISSUER, leeway=300)
        claims["exp"] = now - 30
        token = tokens.generate_access_token(claims=claims)

        result = await verifier.verify(token)

        assert result["sub"] == ALICE.subject

    @pytest.mark.asyncio
    async def test_expired_beyond_leeway(self, endpoint, tokens, claims, now):
        cache = SigningKeyCache(TEST_JWKS_URL, transport=endpoint.transport)
        verifier = SignatureVerifier(cache, TEST_ISSUER, leeway=60)
        claims["exp"] = now - 600
        token = tokens.generate_access_token(claims=claims)

        with pytest.raises(Expired):
            await verifier.verify(token)

    @pytest.mark.asyncio
    async def test_not_yet_valid_token(self, verifier, tokens, claims, metrics, now):
        """A token whose nbf lies a day ahead is rejected."""
        claims["nbf"] = now + 86400
        token = tokens.generate_access_token(claims=claims)

        with pytest.raises(NotYetValid):
            await verifier.verify(token)

        assert metrics.sample("token_validations_total", status="token_not_yet_valid") == 1

    @pytest.mark.asyncio
    async def test_past_not_before_accepted(self, verifier, tokens, claims, now):
        claims["nbf"] = now - 60
        token = tokens.generate_access_token(claims=claims)

        result = await verifier.verify(token)

        assert result["nbf"] == now - 60

    @pytest.mark.asyncio
    async def test_token_without_exp_accepted(self, verifier, tokens, claims):
        """Expiry is enforced when present; a token without exp is not malformed."""
        del claims["exp"]
        token = tokens.generate_access_token(claims=claims)

        result = await verifier.verify(token)

        assert "exp" not in result
        assert result["sub"] == ALICE.subject

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["exp", "nbf", "iat"])
    async def test_non_numeric_time_claim(self, verifier, tokens, claims, field):
        claims[field] = "tomorrow"
        token = tokens.generate_access_token(claims=claims)

        with pytest.raises(MalformedToken):
            await verifier.verify(token)

    @pytest.mark.asyncio
    async def test_missing_subject(self, verifier, tokens, claims):
        del claims["sub"]
        token = tokens.generate_access_token(claims=claims)

        with pytest.raises(MalformedToken):
            await verifier.verify(token)

    @pytest.mark.asyncio
    async def test_signature_checked_before_expiry(self, verifier, impostor_key_pair, claims, now):
        """An expired forgery reports the signature failure."""
        claims["exp"] = now - 10
        token = MockTokenGenerator(impostor_key_pair).generate_access_token(claims=claims)

        with pytest.raises(SignatureInvalid):
            await verifier.verify(token)

    @pytest.mark.asyncio
    async def test_issuer_checked_before_expiry(self, verifier, tokens, claims, now):
        claims.update(iss="https://issuer.example.com", exp=now - 10)
        token = tokens.generate_access_token(claims=claims)

        with pytest.raises(IssuerMismatch):
            await verifier.verify(token)

    @pytest.mark.asyncio
    async def test_missing_issuer(self, verifier, tokens, claims):
        del claims["iss"]
        token = tokens.generate_access_token(claims=claims)

        with pytest.raises(IssuerMismatch):
            await verifier.verify(token)
