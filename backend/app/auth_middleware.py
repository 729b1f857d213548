"""
JWT Authentication Middleware.

Resolves the tenant (and, for storefront shoppers, the client) from a
signed JWT. Two token types exist:
- tenant tokens: sub = tenant_id, used by the back office
- client tokens: type = "client", sub = client_id, tenant_id claim
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Header, HTTPException, Depends, Request
from jose import JWTError, jwt

logger = logging.getLogger("app.auth")

# JWT Configuration
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24 * 7  # 7 days
CLIENT_TOKEN_TYPE = "client"


def _get_secret_key() -> str:
    """Lazy-load the secret key to support testing."""
    from app.config import get_settings
    return get_settings().SECRET_KEY


def _encode(claims: dict, expires_delta: Optional[timedelta]) -> str:
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    return jwt.encode({**claims, "exp": expire}, _get_secret_key(), algorithm=ALGORITHM)


def create_access_token(tenant_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed back-office JWT for a tenant.

    Args:
        tenant_id: The tenant's UUID.
        expires_delta: Optional custom expiration time.

    Returns:
        A signed JWT string.
    """
    return _encode({"sub": tenant_id}, expires_delta)


def create_client_token(tenant_id: str, client_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed JWT for a storefront client of a tenant."""
    return _encode({"sub": client_id, "type": CLIENT_TOKEN_TYPE, "tenant_id": tenant_id}, expires_delta)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=401,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_token_payload(
    request: Request,
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> dict:
    """
    Decode the caller's JWT.
    Supports both 'Authorization: Bearer' header and 'auth_token' cookie.
    """
    token = None

    # 1. Try Authorization Header
    if authorization and authorization.startswith("Bearer "):
        token = authorization[7:]

    # 2. Try HttpOnly Cookie (Fallback)
    if not token:
        token = request.cookies.get("auth_token")

    if not token:
        raise _credentials_exception()

    try:
        payload = jwt.decode(token, _get_secret_key(), algorithms=[ALGORITHM])
    except JWTError:
        raise _credentials_exception()

    if payload.get("sub") is None:
        raise _credentials_exception()
    if payload.get("type") == CLIENT_TOKEN_TYPE and not payload.get("tenant_id"):
        raise _credentials_exception()
    return payload


async def get_current_tenant(payload: dict = Depends(get_token_payload)) -> str:
    """
    FastAPI dependency returning the validated tenant_id for any token type.
    """
    if payload.get("type") == CLIENT_TOKEN_TYPE:
        tenant_id = payload["tenant_id"]
    else:
        tenant_id = payload["sub"]
    logger.debug(f"Authenticated tenant: {tenant_id}")
    return tenant_id


async def get_optional_client(payload: dict = Depends(get_token_payload)) -> Optional[str]:
    """The client_id of a client token; None for back-office tokens."""
    if payload.get("type") == CLIENT_TOKEN_TYPE:
        return payload["sub"]
    return None


async def require_back_office(payload: dict = Depends(get_token_payload)) -> str:
    """Tenant dependency that rejects storefront client tokens."""
    if payload.get("type") == CLIENT_TOKEN_TYPE:
        raise HTTPException(status_code=403, detail="Back-office credentials required")
    return payload["sub"]
