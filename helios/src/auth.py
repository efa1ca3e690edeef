"""
Bearer token authentication for the dashboard API.

Validates ``Authorization: Bearer {token}`` headers against the configured
DASHBOARD_TOKEN using constant-time comparison via secrets.compare_digest.
An empty configured token leaves the API open (bind it to localhost).

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

import logging
import secrets

from fastapi import HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

logger = logging.getLogger(__name__)


def verify_bearer_token(token: str, expected: str) -> bool:
    """Compare a presented token with the configured one in constant time.

    Args:
        token: The bearer token extracted from the Authorization header.
        expected: The configured dashboard token.

    Returns:
        bool: True only if both are non-empty and equal.
    """
    if not token or not expected:
        return False
    return secrets.compare_digest(token.encode("utf-8"), expected.encode("utf-8"))


class DashboardAuth:
    """FastAPI-compatible Bearer token check for the dashboard routes.

    Attributes:
        token: Configured dashboard token; empty disables the check.
        scheme: FastAPI HTTPBearer security scheme.
    """

    def __init__(self, token: str) -> None:
        self.token = token
        self.scheme = HTTPBearer(auto_error=False)

    @property
    def enabled(self) -> bool:
        return bool(self.token)

    async def verify(self, request: Request) -> None:
        """Validate the request's Bearer token when a token is configured.

        Raises:
            HTTPException: 401 Unauthorized if the token is invalid or missing.
        """
        if not self.enabled:
            return

        credentials: HTTPAuthorizationCredentials | None = await self.scheme(request)
        if credentials is None:
            raise HTTPException(
                status_code=401,
                detail="Missing authorization credentials.",
                headers={"WWW-Authenticate": "Bearer"},
            )

        if not verify_bearer_token(credentials.credentials, self.token):
            logger.warning("Rejected dashboard request with invalid token")
            raise HTTPException(
                status_code=401,
                detail="Invalid token.",
                headers={"WWW-Authenticate": "Bearer"},
            )
