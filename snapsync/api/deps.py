"""Common API dependencies: current user extraction, service access."""

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from snapsync.services.registry import Services
from snapsync.utils.security import decode_token

bearer_scheme = HTTPBearer()


def get_services(request: Request) -> Services:
    return request.app.state.services


def user_id_from_token(token: str) -> str:
    """Validate an access token and return its user id. Raises HTTPException(401)."""
    try:
        payload = decode_token(token)
    except jwt.PyJWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    if payload.get("type") != "access" or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
        )
    return payload["sub"]


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> str:
    """Extract the signed-in user id from the bearer token."""
    return user_id_from_token(credentials.credentials)
