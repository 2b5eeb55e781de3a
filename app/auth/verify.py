"""
verify.py
---------
Supabase access-token verification (ES256 against the project's JWKS).

`auth_dependency` returns the decoded claims; routes treat the `sub` claim
as the account id that scopes every snapshot, session and tool call.
"""

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from app.config import settings

SUPABASE_AUDIENCE = "authenticated"
JWKS_CACHE_SECONDS = 600

_bearer = HTTPBearer()
_jwks: PyJWKClient | None = None


def _signing_keys() -> PyJWKClient:
    global _jwks
    if _jwks is None:
        _jwks = PyJWKClient(settings.jwks_url(), cache_keys=True, lifespan=JWKS_CACHE_SECONDS)
    return _jwks


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_jwt(token: str) -> dict:
    try:
        key = _signing_keys().get_signing_key_from_jwt(token).key
        return jwt.decode(
            token,
            key,
            algorithms=["ES256"],
            audience=SUPABASE_AUDIENCE,
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise _unauthorized("Token expired") from e
    except jwt.PyJWTError as e:
        raise _unauthorized(f"Invalid authentication token: {e}") from e


def auth_dependency(credentials: HTTPAuthorizationCredentials = Depends(_bearer)) -> dict:
    return verify_jwt(credentials.credentials)
