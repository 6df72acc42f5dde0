from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

import jwt
from jwt.exceptions import PyJWTError
from pydantic import BaseModel

from app.core.config import settings
from app.core.errors import (
    ServiceUnavailableError,
    NOT_FOUND,
    DUPLICATE,
    FOREIGN_KEY_VIOLATION,
    PERMISSION_DENIED,
)
from app.core.retry import is_retryable_error
from app.services.backend import Backend, get_backend

# Roles carried in the auth provider's app_metadata that may use the back office
ADMIN_ROLES = ("admin", "super_admin")

bearer_scheme = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    id: str
    email: Optional[str] = None
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


def get_backend_dep() -> Backend:
    return get_backend()


def get_token_from_request(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    """
    Extract the access token from the Authorization header or the auth cookie.
    Priority: Header > Cookie
    """
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get("access_token")


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:
    """
    Get the current user from the auth provider's JWT.

    Authentication itself is delegated to the external provider; this only
    verifies the token signature and reads the user id and role.
    """
    token = get_token_from_request(request, credentials)

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
        )
    except PyJWTError:
        raise credentials_exception

    user_id = payload.get("sub")
    if not user_id:
        raise credentials_exception

    app_metadata = payload.get("app_metadata") or {}
    return CurrentUser(
        id=str(user_id),
        email=payload.get("email"),
        role=app_metadata.get("role") or "user",
    )


def get_current_admin(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """
    Get current user and verify they may use the back office.
    """
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions",
        )
    return current_user


_CODE_STATUS = {
    NOT_FOUND: status.HTTP_404_NOT_FOUND,
    DUPLICATE: status.HTTP_409_CONFLICT,
    FOREIGN_KEY_VIOLATION: status.HTTP_409_CONFLICT,
    PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
}


def http_status_for(error: Exception) -> int:
    if isinstance(error, ServiceUnavailableError) or is_retryable_error(error):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return _CODE_STATUS.get(getattr(error, "code", None), status.HTTP_500_INTERNAL_SERVER_ERROR)
