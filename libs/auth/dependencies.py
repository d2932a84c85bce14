from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError

from libs.auth.models import AuthUser
from libs.common.config import get_settings

security = HTTPBearer()


def decode_token(token: str) -> AuthUser:
    """Decode an access token into an AuthUser.

    Raises JWTError or pydantic ValidationError for bad tokens.
    """
    settings = get_settings()
    payload = jwt.decode(
        token,
        settings.AUTH_JWT_SECRET,
        algorithms=[settings.AUTH_JWT_ALGORITHM],
        options={"verify_aud": False},
    )
    return AuthUser(**payload)


async def get_current_user(
    request: Request,
    token: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> AuthUser:
    """
    Validate the bearer token and return the authenticated user.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        user = decode_token(token.credentials)
    except (JWTError, ValidationError):
        raise credentials_exception

    # Rate limiting keys off the authenticated user
    request.state.user = user
    return user


async def require_admin(
    current_user: Annotated[AuthUser, Depends(get_current_user)]
) -> AuthUser:
    """
    Ensure the user carries admin rights.
    """
    if not current_user.has_admin_rights:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user
