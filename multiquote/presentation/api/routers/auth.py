from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from pydantic import EmailStr

from ....application.services.login_service import AuthenticatedCaller, TwoFactorLoginService
from ....application.services.login_session_tracker import RequestMetadata
from ....application.services.user_admin_service import UserAdminService
from ....core.dependencies import get_login_service, get_user_admin_service
from ....domain.models import AuditAction, UserRole
from ...api.audit import AuditRecorder, audited
from ...api.dependencies import get_request_metadata, require_admin_user, require_authenticated_user
from ...api.schemas.auth import LoginRequest, RefreshTokenRequest, ResendCodeRequest, VerifyLoginCodeRequest
from ...api.uploads import read_upload

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/login", dependencies=[Depends(audited(AuditAction.LOGIN_ATTEMPTS))])
async def login(
    payload: LoginRequest,
    login_service: TwoFactorLoginService = Depends(get_login_service),
) -> Dict[str, Any]:
    step = await login_service.initiate(payload.email, payload.password)
    return {"step": step, "message": "Verification code sent to your email"}


@router.post("/verify-login-code")
async def verify_login_code(
    payload: VerifyLoginCodeRequest,
    recorder: Optional[AuditRecorder] = Depends(audited(AuditAction.VERIFY_EMAIL_TOKEN)),
    metadata: RequestMetadata = Depends(get_request_metadata),
    login_service: TwoFactorLoginService = Depends(get_login_service),
) -> Dict[str, Any]:
    result = await login_service.verify(payload.email, payload.code, metadata)
    if recorder is not None:
        recorder.correlate(result.login_session.id)
    return {
        "message": "Login successful",
        "token": result.access_token,
        "refreshToken": result.refresh_token,
        "user": result.user.public_profile(),
    }


@router.post("/resend-code", dependencies=[Depends(audited(AuditAction.RESEND_CODE))])
async def resend_code(
    payload: ResendCodeRequest,
    login_service: TwoFactorLoginService = Depends(get_login_service),
) -> Dict[str, Any]:
    step = await login_service.resend(payload.email)
    return {"step": step, "message": "Verification code resent"}


@router.post("/refresh-token", dependencies=[Depends(audited(AuditAction.REFRESH_TOKEN))])
async def refresh_token(
    payload: RefreshTokenRequest,
    login_service: TwoFactorLoginService = Depends(get_login_service),
) -> Dict[str, Any]:
    if not payload.refresh_token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Refresh token required")
    token = login_service.refresh_access_token(payload.refresh_token)
    return {"message": "Token refreshed successfully", "token": token}


@router.get("/me")
async def me(caller: AuthenticatedCaller = Depends(require_authenticated_user)) -> Dict[str, Any]:
    return {"message": "Token valid", "user": caller.user.public_profile()}


@router.post("/logout", dependencies=[Depends(audited(AuditAction.LOGOUT))])
async def logout(
    caller: AuthenticatedCaller = Depends(require_authenticated_user),
    login_service: TwoFactorLoginService = Depends(get_login_service),
) -> Dict[str, Any]:
    login_service.logout(caller)
    return {"message": "Logged out successfully"}


@router.post(
    "/create-user",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(audited(AuditAction.CREATE_USER))],
)
async def create_user(
    first_name: str = Form(..., alias="firstName", min_length=1),
    last_name: str = Form(..., alias="lastName", min_length=1),
    email: EmailStr = Form(...),
    phone_number: Optional[str] = Form(None, alias="phoneNumber"),
    role: UserRole = Form(UserRole.USER),
    img: Optional[UploadFile] = File(None),
    signature: Optional[UploadFile] = File(None),
    _: AuthenticatedCaller = Depends(require_admin_user),
    user_admin: UserAdminService = Depends(get_user_admin_service),
) -> Dict[str, Any]:
    user = await user_admin.create_user(
        first_name=first_name,
        last_name=last_name,
        email=email,
        role=role,
        phone_number=phone_number or None,
        img=await read_upload(img),
        signature=await read_upload(signature),
    )
    return {"message": "User account created successfully", "user": user.public_profile()}


@router.patch("/edit-user/{user_id}", dependencies=[Depends(audited(AuditAction.EDIT_USER))])
async def edit_user(
    user_id: str,
    first_name: Optional[str] = Form(None, alias="firstName"),
    last_name: Optional[str] = Form(None, alias="lastName"),
    email: Optional[EmailStr] = Form(None),
    phone_number: Optional[str] = Form(None, alias="phoneNumber"),
    role: Optional[UserRole] = Form(None),
    password: Optional[str] = Form(None),
    img: Optional[UploadFile] = File(None),
    signature: Optional[UploadFile] = File(None),
    caller: AuthenticatedCaller = Depends(require_admin_user),
    user_admin: UserAdminService = Depends(get_user_admin_service),
) -> Dict[str, Any]:
    user = await user_admin.edit_user(
        user_id,
        caller.user,
        first_name=first_name,
        last_name=last_name,
        email=email,
        phone_number=phone_number,
        role=role,
        password=password,
        img=await read_upload(img),
        signature=await read_upload(signature),
    )
    return {
        "message": "User updated successfully",
        "user": {**user.public_profile(), "status": user.status.value},
    }


@router.patch(
    "/user/{user_id}/toggle-status",
    dependencies=[Depends(audited(AuditAction.TOGGLE_USER_STATUS))],
)
async def toggle_user_status(
    user_id: str,
    _: AuthenticatedCaller = Depends(require_admin_user),
    user_admin: UserAdminService = Depends(get_user_admin_service),
) -> Dict[str, Any]:
    user = user_admin.toggle_status(user_id)
    return {
        "message": f"User is now {user.status.value}",
        "user": {
            "id": user.id,
            "firstName": user.first_name,
            "lastName": user.last_name,
            "email": user.email,
            "status": user.status.value,
        },
    }
