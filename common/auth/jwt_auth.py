"""
JWT verification provider.

Tokens are signed by the identity provider with a shared secret; this
provider only decodes them. create_token exists for local development and
tests, where no identity provider is running.

Example:
    auth = JWTAuth(secret="your-secret-key")

    token = await auth.create_token("user-123")
    claims = await auth.verify_token(token)
    print(claims["sub"])  # user-123
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Any

from jose import jwt, JWTError

from common.auth.base import AuthProvider


class JWTAuth(AuthProvider):
    """JWT verification provider backed by python-jose."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        access_token_expire_minutes: int = 60,
    ):
        """
        Initialize JWT auth provider.

        Args:
            secret: Secret key shared with the identity provider
            algorithm: JWT algorithm (default: HS256)
            access_token_expire_minutes: Lifetime of locally created tokens
        """
        self.secret = secret
        self.algorithm = algorithm
        self.access_token_expire = timedelta(minutes=access_token_expire_minutes)

    async def create_token(
        self,
        user_id: str,
        **claims: Any,
    ) -> str:
        """Create a JWT token for the user."""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "exp": now + self.access_token_expire,
            "iat": now,
            **claims,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    async def verify_token(self, token: str) -> Dict[str, Any]:
        """Verify and decode a JWT token."""
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
            )
            return payload
        except JWTError as e:
            raise ValueError(f"Invalid token: {e}")
