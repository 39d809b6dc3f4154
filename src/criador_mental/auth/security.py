"""
JWT Verification

This module is responsible for:

1. Verifying bearer JWTs issued by the identity provider (Supabase style:
   HS256, audience "authenticated", subject = user id).
2. Producing a validated `UserContext` for downstream routes.
3. Resolving the *optional* identity used by the session endpoint, where
   "no token" is a valid answer (the client then shows the auth screen).
"""

from __future__ import annotations

import jwt
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..config import settings
from .models import UserContext


# ---------------------------------------------------------------------
# Security Schemes
# ---------------------------------------------------------------------

security = HTTPBearer(auto_error=True)
optional_security = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class JWTVerificationError(RuntimeError):
    """Raised internally when token verification fails before converting to HTTP errors."""


# ---------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------

def _validate_jwt_config() -> None:
    """
    Validate that JWT verification configuration is present.
    """
    if not settings.jwt_secret.get_secret_value():
        raise JWTVerificationError("Missing jwt_secret in configuration.")
    if not settings.jwt_algo:
        raise JWTVerificationError("Missing jwt_algo in configuration.")


def _decode_token(token: str) -> dict:
    """
    Decode and validate an identity token.

    Raises
    ------
    Various JWT-related exceptions, which the public wrapper handles.
    """
    _validate_jwt_config()

    return jwt.decode(
        token,
        settings.jwt_secret.get_secret_value(),
        algorithms=[settings.jwt_algo],
        audience=settings.jwt_audience,
        options={"require": ["sub", "aud", "exp"]},
    )


# ---------------------------------------------------------------------
# Public Authentication Dependencies
# ---------------------------------------------------------------------

def verify_access_token(token: str) -> UserContext:
    """
    Verify a bearer token and construct a UserContext.

    Expected claims:
      - sub: user id
      - aud: configured audience
      - exp: expiry
      - email (optional), role (optional)

    Raises
    ------
    HTTPException(401) for invalid or expired tokens,
    HTTPException(500) when verification is not configured.
    """
    try:
        payload = _decode_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired.",
        )
    except jwt.InvalidAudienceError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token audience.",
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or malformed token.",
        )
    except JWTVerificationError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="JWT verification configuration error.",
        )

    user_id = payload.get("sub")
    if not user_id or not isinstance(user_id, str):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing 'sub' claim.",
        )

    role = payload.get("role")
    return UserContext(
        user_id=user_id,
        email=payload.get("email"),
        scopes=[role] if isinstance(role, str) and role else [],
    )


def require_user(
    creds: HTTPAuthorizationCredentials = Depends(security),
) -> UserContext:
    """Dependency for routes that need an authenticated user."""
    return verify_access_token(creds.credentials)


def resolve_optional_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
) -> Optional[UserContext]:
    """
    Dependency returning the user when a bearer token is present, else None.

    A token that is present but invalid is still rejected with 401.
    """
    if creds is None:
        return None
    return verify_access_token(creds.credentials)
