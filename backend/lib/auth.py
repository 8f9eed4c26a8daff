"""
Authentication utilities for JWT validation
"""
import os
import logging
from typing import Optional
from fastapi import HTTPException, Header
from jose import JWTError, jwt
from dotenv import load_dotenv

load_dotenv()
load_dotenv('../.env')

JWT_ALGORITHM = "HS256"
LOCAL_USER_ID = "local"

logger = logging.getLogger("backend.auth")


def get_jwt_secret() -> Optional[str]:
    return os.getenv("CALMIFY_JWT_SECRET")


async def get_current_user(authorization: Optional[str] = Header(None)):
    """
    Validate JWT token and return user info

    When CALMIFY_JWT_SECRET is not set the service runs single-user and every
    request belongs to the local user.

    Args:
        authorization: Bearer token from Authorization header

    Returns:
        dict: User information including id

    Raises:
        HTTPException: If token is missing or invalid
    """
    secret = get_jwt_secret()
    if not secret:
        return {"id": LOCAL_USER_ID, "email": None}

    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")

    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    token = authorization.replace("Bearer ", "")

    try:
        claims = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"Auth error: {e}")
        raise HTTPException(status_code=401, detail="Could not validate credentials")

    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Token has no subject")

    return {
        "id": user_id,
        "email": claims.get("email"),
    }


def create_access_token(user_id: str, email: Optional[str] = None) -> str:
    """Issue a token for a user (used by clients and tests)"""
    secret = get_jwt_secret()
    if not secret:
        raise ValueError("CALMIFY_JWT_SECRET must be set to issue tokens")
    claims = {"sub": user_id}
    if email:
        claims["email"] = email
    return jwt.encode(claims, secret, algorithm=JWT_ALGORITHM)
