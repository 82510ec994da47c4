from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from ....application.services.company_service import CompanyService
from ....application.services.login_service import AuthenticatedCaller
from ....core.dependencies import get_company_service
from ....domain.filters import Page
from ....domain.models import AuditAction
from ...api.audit import audited
from ...api.dependencies import require_admin_user, require_authenticated_user
from ...api.uploads import read_upload

router = APIRouter(prefix="/companies", tags=["Companies"])


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(audited(AuditAction.CREATE_COMPANY))],
)
async def create_company(
    name: str = Form(...),
    email: Optional[str] = Form(None),
    phone_number: Optional[str] = Form(None, alias="phoneNumber"),
    address: Optional[str] = Form(None),
    logo: Optional[UploadFile] = File(None),
    _: AuthenticatedCaller = Depends(require_admin_user),
    company_service: CompanyService = Depends(get_company_service),
) -> Dict[str, Any]:
    company = await company_service.create_company(
        name=name,
        email=email or None,
        phone_number=phone_number or None,
        address=address or None,
        logo=await read_upload(logo),
    )
    return {"message": "Company created successfully", "company": company.to_dict()}


@router.put("/{company_id}", dependencies=[Depends(audited(AuditAction.UPDATE_COMPANY))])
async def update_company(
    company_id: str,
    name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    phone_number: Optional[str] = Form(None, alias="phoneNumber"),
    address: Optional[str] = Form(None),
    logo: Optional[UploadFile] = File(None),
    _: AuthenticatedCaller = Depends(require_admin_user),
    company_service: CompanyService = Depends(get_company_service),
) -> Dict[str, Any]:
    company = await company_service.update_company(
        company_id,
        name=name,
        email=email,
        phone_number=phone_number,
        address=address,
        logo=await read_upload(logo),
    )
    return {"message": "Company updated successfully", "company": company.to_dict()}


@router.get("")
async def list_companies(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    search: Optional[str] = Query(None),
    _: AuthenticatedCaller = Depends(require_authenticated_user),
    company_service: CompanyService = Depends(get_company_service),
) -> Dict[str, Any]:
    result = company_service.list_companies(Page(page=page, limit=limit), search=search)
    return {
        "companies": [company.to_dict() for company in result.items],
        "pagination": {
            "total": result.total,
            "page": page,
            "limit": limit,
            "totalPages": result.total_pages,
        },
    }
