"""JWT access tokens for calavail.

The token subject is the owner id; every schedule operation receives it
explicitly from the request dependency rather than from ambient state.
"""

import os
import jwt
from datetime import datetime, timedelta
from typing import Optional, Dict
from dotenv import load_dotenv

load_dotenv()

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRATION_HOURS = int(os.getenv("JWT_EXPIRATION_HOURS", "24"))


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token for a user.
    
    Args:
        user_id: User ID to encode in token
        expires_delta: Lifetime override (defaults to JWT_EXPIRATION_HOURS)
        
    Returns:
        Encoded JWT token string
    """
    now = datetime.utcnow()
    payload = {
        "sub": user_id,
        "exp": now + (expires_delta or timedelta(hours=JWT_EXPIRATION_HOURS)),
        "iat": now,
    }
    return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict]:
    """Decode and validate a JWT access token; None if expired or malformed."""
    try:
        return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def get_user_id_from_token(token: str) -> Optional[str]:
    payload = decode_access_token(token)
    if payload:
        return payload.get("sub")
    return None
