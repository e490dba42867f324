from typing import Optional

from fastapi import Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core import config
from app.core.jwt_auth import jwt_manager
from app.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
)

security = HTTPBearer(
    scheme_name="JWT Token",
    description="Bearer access token; the sub claim is the member's user id",
    auto_error=False,
)


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """Stable user id of the authenticated member"""
    if credentials is None or not credentials.credentials.strip():
        raise AuthenticationError("Authentication data is required")

    payload = jwt_manager.decode_token(credentials.credentials)
    return str(payload["sub"])


def verify_superadmin_token(
    x_superadmin_token: Optional[str] = Header(None),
) -> bool:
    """
    Guard for the session administration routes.

    Raises:
        ConfigurationError: SUPERADMIN_TOKEN is not set on the server
        AuthorizationError: header missing or wrong
    """
    expected = config.SUPERADMIN_TOKEN
    if not expected:
        raise ConfigurationError("SUPERADMIN_TOKEN", "Administration is disabled on this server")

    if x_superadmin_token != expected:
        raise AuthorizationError(
            "Invalid superadmin token" if x_superadmin_token else "SuperAdmin token header is required"
        )

    return True
