"""Access token helpers for the hosted auth platform's JWTs."""

from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from jose import jwt, JWTError

from .exceptions import InvalidTokenError


def create_access_token(
    data: Dict[str, Any],
    secret_key: str,
    algorithm: str = "HS256",
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=15)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret_key, algorithm=algorithm)


def decode_access_token(token: str, secret_key: str, algorithm: str = "HS256") -> str:
    """Validate a JWT and return its subject (the user id).

    Raises:
        InvalidTokenError: Bad signature, expired, or no subject
    """
    try:
        claims = jwt.decode(token, secret_key, algorithms=[algorithm])
    except JWTError as e:
        raise InvalidTokenError(str(e))

    subject = claims.get("sub")
    if not subject:
        raise InvalidTokenError("Token has no subject")
    return subject
