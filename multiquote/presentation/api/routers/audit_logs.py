from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from ....application.services.audit_trail_service import AuditTrailService
from ....application.services.login_service import AuthenticatedCaller
from ....core.dependencies import get_audit_trail_service
from ....domain.filters import Page
from ...api.dependencies import require_admin_user

router = APIRouter(prefix="/audit-logs", tags=["Audit Logs"])


@router.get("")
async def list_audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    action: Optional[str] = Query(None),
    user_role: Optional[str] = Query(None),
    method: Optional[str] = Query(None),
    ip_address: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    success: Optional[bool] = Query(None),
    browser: Optional[str] = Query(None),
    os: Optional[str] = Query(None),
    device_type: Optional[str] = Query(None, alias="deviceType"),
    city: Optional[str] = Query(None),
    country: Optional[str] = Query(None),
    _: AuthenticatedCaller = Depends(require_admin_user),
    audit_trail: AuditTrailService = Depends(get_audit_trail_service),
) -> Dict[str, Any]:
    filters = {
        "action": action,
        "user_role": user_role,
        "method": method,
        "ip_address": ip_address,
        "user_id": user_id,
        "success": success,
        "browser": browser,
        "os": os,
        "deviceType": device_type,
        "city": city,
        "country": country,
    }
    result = audit_trail.list_logs(filters, Page(page=page, limit=limit))
    return {
        "message": "Audit logs fetched successfully",
        "pagination": {
            "totalRecords": result.total,
            "totalPages": result.total_pages,
            "currentPage": page,
            "pageSize": limit,
        },
        "data": [log.to_dict() for log in result.items],
    }
