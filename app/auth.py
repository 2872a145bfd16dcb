"""FastAPI dependency resolving the signed-in user."""

import logging
from typing import Optional
from fastapi import Cookie, Header, HTTPException
import httpx

from app.config import config
from app.auth_client import auth_client
from app.auth_cache import get_auth_cache

logger = logging.getLogger(__name__)

GUEST_USER = {"id": "guest", "username": "guest", "role": "admin"}

SESSION_COOKIE = "session"


def _unauthorized(message: str = "Not authenticated") -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={
            "error_code": "unauthorized",
            "error_message": message
        }
    )


def _unavailable() -> HTTPException:
    return HTTPException(
        status_code=503,
        detail={
            "error_code": "auth_unavailable",
            "error_message": "Auth service unavailable"
        }
    )


def extract_token(authorization: Optional[str], session: Optional[str]) -> Optional[str]:
    """Get the token from an "Authorization: Bearer" header, falling back to the session cookie."""
    if authorization:
        parts = authorization.split(" ")
        if len(parts) == 2 and parts[0] == "Bearer" and parts[1]:
            return parts[1]
        return None
    return session or None


async def get_current_user(
    authorization: Optional[str] = Header(None),
    session: Optional[str] = Cookie(None, alias=SESSION_COOKIE),
) -> dict:
    """
    FastAPI dependency returning the user behind the request.

    With DISABLE_AUTH=true every request runs as a guest admin.

    Returns:
        Dict with id, username and role

    Raises:
        HTTPException: 401 if missing/invalid, 503 if auth service unavailable
    """
    if config.DISABLE_AUTH:
        return dict(GUEST_USER)

    token = extract_token(authorization, session)
    if not token:
        logger.warning("Request without credentials")
        raise _unauthorized()

    cache = get_auth_cache()
    cached_result = cache.get(token)
    if cached_result is not None:
        if "user" in cached_result:
            logger.debug("Using cached auth result")
            return cached_result["user"]
        logger.debug("Using cached auth failure")
        raise _unauthorized("Invalid token")

    try:
        result = await auth_client.verify_token(token)
    except httpx.RequestError as e:
        logger.error(f"Auth service unavailable: {e}")
        raise _unavailable()
    except ValueError as e:
        logger.error(f"Auth misconfigured: {e}")
        raise _unavailable()

    cache.set(token, result)

    if "user" in result:
        logger.info(f"User authenticated: {result['user'].get('username', result['user']['id'])}")
        return result["user"]

    logger.warning(f"Authentication failed: {result.get('error_code')}")
    raise _unauthorized("Invalid token")
