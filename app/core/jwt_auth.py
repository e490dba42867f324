import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from app.core.config import JWT_ALGORITHM, JWT_SECRET_KEY
from app.core.exceptions import AuthenticationError, ConfigurationError

logger = logging.getLogger(__name__)


class JWTManager:
    """Issues and verifies the bearer tokens carrying the caller's user id"""

    def __init__(self, secret_key: Optional[str] = None, algorithm: str = JWT_ALGORITHM):
        self.secret_key = secret_key or JWT_SECRET_KEY
        self.algorithm = algorithm

    def _require_secret(self) -> str:
        if not self.secret_key:
            raise ConfigurationError("JWT_SECRET_KEY", "JWT secret key is not configured")
        return self.secret_key

    def create_access_token(
        self,
        user_id: str,
        expires_minutes: int = 60,
        extra_data: Dict[str, Any] = None,
    ) -> str:
        """
        Create JWT access token for a user

        Args:
            user_id: Stable user id, stored in the ``sub`` claim
            expires_minutes: Token lifetime
            extra_data: Additional claims
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "iat": now,
            "exp": now + timedelta(minutes=expires_minutes),
            "type": "access_token",
        }
        if extra_data:
            payload.update(extra_data)

        return jwt.encode(payload, self._require_secret(), algorithm=self.algorithm)

    def decode_token(self, token: str) -> Dict[str, Any]:
        """
        Decode and verify JWT token

        Raises:
            AuthenticationError: If token is invalid, expired or has no subject
        """
        try:
            payload = jwt.decode(
                token, self._require_secret(), algorithms=[self.algorithm]
            )
        except jwt.ExpiredSignatureError:
            logger.warning("JWT token has expired")
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError:
            logger.warning("Invalid JWT token provided")
            raise AuthenticationError("Invalid token")

        if payload.get("type") != "access_token":
            raise AuthenticationError("Invalid token type")

        if not payload.get("sub"):
            raise AuthenticationError("Token has no subject")

        return payload


jwt_manager = JWTManager()
