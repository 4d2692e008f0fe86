"""
Google One Tap credential verification.

The ID token is verified locally with google-auth (signature against
Google's certificates, expiry and issuer); we then check the audience.
"""
import logging
from typing import List, Optional

from fastapi.concurrency import run_in_threadpool
from google.auth import exceptions as google_auth_exceptions
from google.auth.transport import requests as google_auth_requests
from google.oauth2 import id_token as google_id_token

from marketplace.config import settings
from marketplace.errors import BadRequestError, UnauthorizedError

logger = logging.getLogger(__name__)


def _looks_like_jwt(credential: str) -> bool:
    parts = credential.split(".")
    return len(parts) == 3 and all(parts)


def _email_verified(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).lower() == "true"


async def verify_google_credential(credential: str, audiences: Optional[List[str]] = None) -> dict:
    """
    Verify a Google ID token and return its claims.

    Raises:
        BadRequestError: missing credential, foreign audience, unverified email
        UnauthorizedError: malformed, invalid or expired credential
    """
    credential = (credential or "").strip()
    if not credential:
        raise BadRequestError("Google credential not received")
    if not _looks_like_jwt(credential):
        raise UnauthorizedError("CREDENTIAL_MALFORMED")

    try:
        # Fetches Google's certificates over HTTP, so keep it off the event loop
        claims = await run_in_threadpool(
            google_id_token.verify_oauth2_token, credential, google_auth_requests.Request()
        )
    except (ValueError, google_auth_exceptions.GoogleAuthError) as e:
        logger.info(f"Rejected Google credential: {e}")
        raise UnauthorizedError("CREDENTIAL_INVALID_OR_EXPIRED")

    audiences = audiences if audiences is not None else settings.google_client_ids
    if audiences and claims.get("aud") not in audiences:
        logger.warning(f"Google credential issued for foreign client_id {claims.get('aud')}")
        raise BadRequestError("ID token issued for another client_id (audience mismatch)")

    email = (claims.get("email") or "").strip().lower()
    if not email:
        raise BadRequestError("Google did not return a valid email")
    if not _email_verified(claims.get("email_verified")):
        raise BadRequestError("Google email is not verified")

    claims["email"] = email
    return claims
