from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ...application.services.login_service import AuthenticatedCaller, TwoFactorLoginService
from ...application.services.login_session_tracker import RequestMetadata
from ...core.dependencies import get_login_service
from ...domain.models import ADMIN_ROLES
from .audit import client_address

_bearer_scheme = HTTPBearer(auto_error=False)


def require_authenticated_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    login_service: TwoFactorLoginService = Depends(get_login_service),
) -> AuthenticatedCaller:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return login_service.authenticate(credentials.credentials)


def require_admin_user(
    caller: AuthenticatedCaller = Depends(require_authenticated_user),
) -> AuthenticatedCaller:
    if caller.user.role not in ADMIN_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden: Only Admins are allowed")
    return caller


def get_request_metadata(request: Request) -> RequestMetadata:
    return RequestMetadata(
        ip_address=client_address(request.headers, request.scope.get("client")),
        user_agent=request.headers.get("user-agent"),
    )
