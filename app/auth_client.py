"""Client for validating user tokens with the external auth service."""

import logging
from typing import Dict, Any
import httpx

from app.config import config

logger = logging.getLogger(__name__)


class AuthClient:
    """Asks the auth service who a bearer token belongs to."""

    def __init__(self):
        self.timeout = 5.0

    @property
    def base_url(self) -> str:
        """Get base URL from config (read dynamically)."""
        return config.AUTH_BASE_URL

    async def verify_token(self, token: str) -> Dict[str, Any]:
        """
        Resolve a token to a user identity.

        Args:
            token: Bearer token or session cookie value

        Returns:
            Dict with validation result:
            - On success (200): {"user": {"id": "...", "username": "...", "role": "..."}}
            - On failure: {"ok": False, "error_code": "...", "error_message": "..."}

        Raises:
            httpx.RequestError: If the request to auth service fails
            ValueError: If AUTH_BASE_URL is not configured
        """
        base_url = self.base_url
        if not base_url:
            raise ValueError("AUTH_BASE_URL is not configured")

        url = f"{base_url.rstrip('/')}/auth/me"

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, headers={"Authorization": f"Bearer {token}"})

                if response.status_code == 200:
                    try:
                        data = response.json()
                    except ValueError:
                        logger.warning(f"Auth service returned non-JSON response: {response.status_code}")
                        return {
                            "ok": False,
                            "error_code": "invalid_response",
                            "error_message": "Auth service returned invalid response"
                        }
                    user = data.get("user", data) if isinstance(data, dict) else None
                    if not isinstance(user, dict) or "id" not in user:
                        return {
                            "ok": False,
                            "error_code": "invalid_response",
                            "error_message": "Auth service response has no user"
                        }
                    return {"user": user}

                try:
                    data = response.json()
                except ValueError:
                    data = {}
                if not isinstance(data, dict):
                    data = {}
                return {
                    "ok": False,
                    "error_code": data.get("error_code", "invalid_token"),
                    "error_message": data.get("error_message", f"Auth service returned status {response.status_code}")
                }

        except httpx.TimeoutException:
            logger.error("Auth service request timed out")
            raise httpx.RequestError("Auth service timeout")

        except httpx.RequestError as e:
            logger.error(f"Failed to reach auth service: {e}")
            raise


auth_client = AuthClient()
