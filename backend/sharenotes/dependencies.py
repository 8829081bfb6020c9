"""
ShareNotes Backend — Caller Identity Dependency
=================================================

What:  Turns a bearer token into the caller identity used for uploads,
       ratings and deletions.
How:   Tokens are issued by the separate authentication service; this module
       only verifies the HMAC signature and expiry with python-jose and reads
       the `sub` claim.
Who:   Injected into routes with Depends(get_caller_identity).
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from sharenotes.config import settings
from sharenotes.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

# auto_error=False: a missing header becomes our AuthenticationError (401), not a bare 403
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CallerIdentity:
    """The authenticated principal making a request."""
    user_id: str


def decode_caller_token(token: str) -> CallerIdentity:
    """
    Verify a token and extract the caller identity.

    Raises:
        AuthenticationError if the token is invalid, expired, or has no subject.
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.info("Rejected bearer token: %s", str(e))
        raise AuthenticationError(message="Invalid or expired token")

    subject = payload.get("sub") or payload.get("id")
    if not subject:
        raise AuthenticationError(message="Token does not identify a user")
    return CallerIdentity(user_id=str(subject))


async def get_caller_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CallerIdentity:
    """Dependency for routes that require an authenticated caller."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError()
    return decode_caller_token(credentials.credentials)
