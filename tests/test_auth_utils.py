"""Tests for password hashing, token helpers and TTL parsing."""
from datetime import datetime, timedelta, timezone

from marketplace.auth.utils import (
    create_access_token,
    create_refresh_token,
    decode_access_token,
    decode_refresh_token,
    get_password_hash,
    hash_token,
    is_strong_password,
    issued_before,
    parse_auth_header,
    verify_password,
)
from marketplace.config import parse_ttl_seconds


# =============================================================================
# Passwords
# =============================================================================

class TestPasswords:

    def test_hash_and_verify(self):
        hashed = get_password_hash("Secreta123")
        assert hashed != "Secreta123"
        assert verify_password("Secreta123", hashed)
        assert not verify_password("otra", hashed)

    def test_verify_without_hash(self):
        assert not verify_password("Secreta123", None)
        assert not verify_password("", get_password_hash("x"))

    def test_strong_password(self):
        assert is_strong_password("Abcdefg1")
        assert not is_strong_password("abcdefg1")
        assert not is_strong_password("ABCDEFG1")
        assert not is_strong_password("Abcdefgh")
        assert not is_strong_password("Ab1")


# =============================================================================
# Tokens
# =============================================================================

class TestTokens:

    def test_access_token_round_trip(self):
        payload = decode_access_token(create_access_token("user_1"))
        assert payload["uid"] == "user_1"
        assert "iatMs" in payload

    def test_access_token_rejected_by_refresh_decoder(self):
        assert decode_refresh_token(create_access_token("user_1")) is None

    def test_refresh_token_keeps_family(self):
        token, jti, family, expires_at = create_refresh_token("user_1", family="fam1")
        payload = decode_refresh_token(token)
        assert payload["jti"] == jti
        assert payload["fam"] == "fam1" == family
        assert expires_at > datetime.now(timezone.utc)

    def test_refresh_token_starts_new_family(self):
        _, _, fam_a, _ = create_refresh_token("user_1")
        _, _, fam_b, _ = create_refresh_token("user_1")
        assert fam_a != fam_b

    def test_garbage_tokens(self):
        assert decode_access_token("not-a-jwt") is None
        assert decode_refresh_token("") is None

    def test_hash_token_is_stable(self):
        assert hash_token("abc") == hash_token("abc")
        assert hash_token("abc") != hash_token("abd")
        assert len(hash_token("abc")) == 64


class TestParseAuthHeader:

    def test_bearer(self):
        assert parse_auth_header("Bearer abc.def") == "abc.def"

    def test_token_prefix_case_insensitive(self):
        assert parse_auth_header("token xyz") == "xyz"

    def test_bare_token(self):
        assert parse_auth_header("  raw  ") == "raw"

    def test_empty(self):
        assert parse_auth_header(None) is None
        assert parse_auth_header("") is None


class TestIssuedBefore:

    def test_no_logout_instant(self):
        assert not issued_before({"iat": 1}, None)

    def test_token_older_than_logout(self):
        payload = decode_access_token(create_access_token("user_1"))
        later = datetime.now(timezone.utc) + timedelta(seconds=1)
        assert issued_before(payload, later)

    def test_token_newer_than_logout(self):
        earlier = datetime.now(timezone.utc) - timedelta(seconds=5)
        payload = decode_access_token(create_access_token("user_1"))
        assert not issued_before(payload, earlier)

    def test_naive_instant_is_utc(self):
        naive = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(minutes=1)
        payload = decode_access_token(create_access_token("user_1"))
        assert not issued_before(payload, naive)

    def test_seconds_only_payload(self):
        instant = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert issued_before({"iat": instant.timestamp() - 1}, instant)
        assert not issued_before({"iat": instant.timestamp() + 1}, instant)

    def test_same_millisecond_is_not_older(self):
        instant = datetime(2026, 1, 1, 0, 0, 0, 700_500, tzinfo=timezone.utc)
        iat_ms = int(instant.timestamp() * 1000)
        assert not issued_before({"iatMs": iat_ms}, instant)
        assert issued_before({"iatMs": iat_ms - 1}, instant)

    def test_missing_iat(self):
        assert issued_before({}, datetime.now(timezone.utc))


# =============================================================================
# Configuration helpers
# =============================================================================

class TestParseTtl:

    def test_units(self):
        assert parse_ttl_seconds("15m", 0) == 900
        assert parse_ttl_seconds("30d", 0) == 30 * 86400
        assert parse_ttl_seconds("2h", 0) == 7200
        assert parse_ttl_seconds("1w", 0) == 604800

    def test_bare_seconds(self):
        assert parse_ttl_seconds("45", 0) == 45

    def test_fallback(self):
        assert parse_ttl_seconds("soon", 123) == 123
        assert parse_ttl_seconds("", 7) == 7
