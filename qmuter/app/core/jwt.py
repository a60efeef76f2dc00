"""
JWT token utilities for authentication.

Tokens identify a Qmuter user by an opaque string id (the `user_id` claim).
"""

from datetime import timedelta
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from qmuter.app.core.config import settings
from qmuter.app.core.clock import utcnow


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.
    
    Args:
        data: Data payload to encode in the token (should include: sub, user_id)
        expires_delta: Optional custom expiration time
        
    Returns:
        Encoded JWT token string
        
    Example payload:
        {
            "sub": "driverA",
            "user_id": "driverA",
            "exp": 1234567890
        }
    """
    to_encode = data.copy()
    to_encode.setdefault("sub", str(to_encode.get("user_id", "")))
    
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    to_encode.update({"exp": utcnow() + lifetime})
    
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and validate a JWT access token.
    
    Returns:
        Decoded payload if the signature and expiry are valid, None otherwise
    """
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
