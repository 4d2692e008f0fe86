"""Authentication utilities - password hashing, token hashing and JWT handling."""
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
import hashlib
import re
import secrets
from jose import JWTError, jwt
import bcrypt
from marketplace.config import settings

# JWT settings
ALGORITHM = "HS256"

PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 128
STRONG_PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d).{8,}$")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password against its hash using bcrypt."""
    if not plain_password or not hashed_password:
        return False
    # Bcrypt has a 72-byte limit
    password_bytes = plain_password.encode('utf-8')[:72]
    hashed_bytes = hashed_password.encode('utf-8')
    try:
        return bcrypt.checkpw(password_bytes, hashed_bytes)
    except ValueError:
        return False


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt."""
    # Bcrypt has a 72-byte limit
    password_bytes = password.encode('utf-8')[:72]
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode('utf-8')


def is_strong_password(password: str) -> bool:
    """At least 8 characters with a lowercase letter, an uppercase letter and a digit."""
    return bool(STRONG_PASSWORD_RE.match(password or ""))


def hash_token(raw: str) -> str:
    """sha256 hex digest, used for refresh tokens, email tokens and OTP codes."""
    return hashlib.sha256(str(raw).encode("utf-8")).hexdigest()


def random_hex(nbytes: int = 16) -> str:
    return secrets.token_hex(nbytes)


def parse_auth_header(value: Optional[str]) -> Optional[str]:
    """Accept "Bearer x", "Token x" or a bare token."""
    if not value:
        return None
    value = value.strip()
    match = re.match(r"^(Bearer|Token)\s+(.+)$", value, re.IGNORECASE)
    token = match.group(2).strip() if match else value
    return token or None


def _registered_claims() -> dict:
    claims = {}
    if settings.JWT_ISS:
        claims["iss"] = settings.JWT_ISS
    if settings.JWT_AUD:
        claims["aud"] = settings.JWT_AUD
    return claims


def _decode(token: str, secret: str) -> Optional[dict]:
    kwargs = {}
    if settings.JWT_ISS:
        kwargs["issuer"] = settings.JWT_ISS
    if settings.JWT_AUD:
        kwargs["audience"] = settings.JWT_AUD
    try:
        return jwt.decode(token, secret, algorithms=[ALGORITHM], **kwargs)
    except JWTError:
        return None


def create_access_token(user_id: str) -> str:
    """Create a short-lived JWT access token."""
    now = datetime.now(timezone.utc)
    to_encode = {
        "uid": user_id,
        "sub": user_id,
        "iat": now,
        "iatMs": int(now.timestamp() * 1000),
        "exp": now + timedelta(seconds=settings.access_ttl_seconds),
        **_registered_claims(),
    }
    return jwt.encode(to_encode, settings.ACCESS_JWT_SECRET, algorithm=ALGORITHM)


def create_refresh_token(user_id: str, family: Optional[str] = None) -> Tuple[str, str, str, datetime]:
    """
    Create a refresh token.

    Returns (token, jti, family, expires_at). A new family is started
    when none is given.
    """
    now = datetime.now(timezone.utc)
    jti = random_hex(16)
    family = family or random_hex(16)
    expires_at = now + timedelta(seconds=settings.refresh_ttl_seconds)
    to_encode = {
        "uid": user_id,
        "jti": jti,
        "fam": family,
        "iat": now,
        "iatMs": int(now.timestamp() * 1000),
        "exp": expires_at,
        **_registered_claims(),
    }
    token = jwt.encode(to_encode, settings.REFRESH_JWT_SECRET, algorithm=ALGORITHM)
    return token, jti, family, expires_at


def decode_access_token(token: str) -> Optional[dict]:
    """Decode and validate an access token.

    Returns the payload if valid, None otherwise.
    """
    if not token:
        return None
    return _decode(token, settings.ACCESS_JWT_SECRET)


def decode_refresh_token(token: str) -> Optional[dict]:
    """Decode and validate a refresh token; payload must carry uid, jti and fam."""
    if not token:
        return None
    payload = _decode(token, settings.REFRESH_JWT_SECRET)
    if not payload or not payload.get("uid") or not payload.get("jti") or not payload.get("fam"):
        return None
    return payload


def issued_before(payload: dict, instant: Optional[datetime]) -> bool:
    """
    True when the token was issued before ``instant`` (or has no iat).

    The millisecond ``iatMs`` claim is preferred: ``iat`` only has whole
    seconds, which would reject tokens issued in the same second right
    after a "log out everywhere".
    """
    if instant is None:
        return False
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    if payload.get("iatMs") is not None:
        return int(payload["iatMs"]) < int(instant.timestamp() * 1000)
    iat = payload.get("iat")
    if iat is None:
        return True
    return float(iat) < instant.timestamp()
