"""Bearer JWT authentication

The identity provider issues tokens; this module only verifies them and
exposes the caller as an ``Identity``.
"""

import logging
from datetime import datetime, timedelta, timezone

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from verdict.config import settings
from verdict.services.profiles import Identity

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(user_id: str, email: str | None = None, expires_in: timedelta | None = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_in or timedelta(hours=settings.jwt_expiration_hours))
    claims = {"sub": user_id, "exp": expire}
    if email:
        claims["email"] = email
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    """Decode and validate a JWT; raises JWTError when invalid or expired"""
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Identity:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError as e:
        logger.info(f"Rejected bearer token: {e}")
        raise credentials_exception from e

    user_id = payload.get("sub")
    if not user_id:
        raise credentials_exception
    return Identity(user_id=str(user_id), email=payload.get("email"))
