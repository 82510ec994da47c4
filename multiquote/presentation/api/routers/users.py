from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from ....application.services.login_service import AuthenticatedCaller
from ....application.services.user_admin_service import UserAdminService
from ....core.dependencies import get_user_admin_service
from ....domain.filters import Page
from ....domain.models import BasicStatus, UserRole
from ...api.dependencies import require_admin_user

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    search: Optional[str] = Query(None),
    role: Optional[UserRole] = Query(None),
    status: Optional[BasicStatus] = Query(None),
    _: AuthenticatedCaller = Depends(require_admin_user),
    user_admin: UserAdminService = Depends(get_user_admin_service),
) -> Dict[str, Any]:
    result = user_admin.list_users(Page(page=page, limit=limit), search=search, role=role, status=status)
    return {
        "users": [user.to_dict() for user in result.items],
        "pagination": {
            "total": result.total,
            "page": page,
            "limit": limit,
            "totalPages": result.total_pages,
        },
    }
