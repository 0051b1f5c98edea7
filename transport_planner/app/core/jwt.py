"""
JWT token utilities.

Tokens are issued by the external identity provider; this service only
verifies them. create_access_token exists for tooling and tests.
"""

from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from transport_planner.app.core.config import settings


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed access token.

    Example payload:
        {
            "sub": "planner01",
            "user_id": 12,
            "email": "planner01@example.com",
            "role": "PLANNER",
            "exp": 1234567890
        }
    """
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def token_for_user(user) -> str:
    """Issue a token carrying the claims the API and audit trail rely on."""
    return create_access_token({
        "sub": user.username,
        "user_id": user.id,
        "email": user.email,
        "role": user.role.value,
    })


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Return the payload of a valid token, or None when it is invalid or expired."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
