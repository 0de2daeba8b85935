"""
verify.py
---------
Purpose:
    JWT verification using Supabase JWKS (ES256) and resolution of the
    academy user behind a token.

Notes:
    - Fetches JWKS from Supabase and caches keys.
    - `auth_dependency` returns raw claims; `get_caller` turns them into a
      `Caller` (user id, academy role, display name) for the chat routes.
    - Roles come from `user_type` at the top level or in `user_metadata`;
      the mobile app's legacy "player" role is treated as "student".
"""

from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from app.config import settings

SUPABASE_AUDIENCE = "authenticated"
DEFAULT_ROLE = "student"
ROLE_ALIASES = {"player": "student"}

_jwk_client = PyJWKClient(settings.jwks_url())
_security = HTTPBearer()


@dataclass(slots=True)
class Caller:
    user_id: str
    role: str
    display_name: str


def verify_jwt(token: str) -> dict:
    try:
        signing_key = _jwk_client.get_signing_key_from_jwt(token)
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["ES256"],
            audience=SUPABASE_AUDIENCE,
            options={"verify_exp": True},
        )
    except jwt.PyJWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid authentication token: {e}",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def auth_dependency(credentials: HTTPAuthorizationCredentials = Depends(_security)) -> dict:
    return verify_jwt(credentials.credentials)


def caller_from_claims(claims: dict) -> Caller:
    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has no subject",
            headers={"WWW-Authenticate": "Bearer"},
        )

    metadata = claims.get("user_metadata") or {}
    role = claims.get("user_type") or metadata.get("user_type") or DEFAULT_ROLE
    role = ROLE_ALIASES.get(role, role)
    display_name = claims.get("full_name") or metadata.get("full_name") or user_id

    return Caller(user_id=user_id, role=role, display_name=display_name)


def get_caller(claims: dict = Depends(auth_dependency)) -> Caller:
    """Resolve the acting academy user from Supabase token claims."""
    return caller_from_claims(claims)
