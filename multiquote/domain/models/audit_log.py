"""Audit trail domain model."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from .login_session import LoginSession


class AuditAction(str, Enum):
    # auth
    CREATE_USER = "Created A user"
    LOGIN_ATTEMPTS = "Attempted Login"
    VERIFY_EMAIL_TOKEN = "Verify email token"
    RESEND_CODE = "Resent verification code"
    REFRESH_TOKEN = "Refreshed access token"
    LOGOUT = "Logged out"
    TOGGLE_USER_STATUS = "Toggled user status"
    EDIT_USER = "Edited user details"

    # company
    CREATE_COMPANY = "Created A company"
    UPDATE_COMPANY = "Updated A company"


@dataclass(slots=True)
class AuditLogEntry:
    """Values captured for one audited request, before persistence."""

    action: str
    method: str
    request_payload: str
    response_payload: str
    response_length: int
    status_code: int
    ip_address: str
    user_agent: str
    user_id: Optional[str] = None
    user_role: str = "unknown"
    login_history_id: Optional[str] = None

    @property
    def success(self) -> bool:
        return 200 <= self.status_code < 400


@dataclass(slots=True)
class AuditLog:
    id: str
    action: str
    method: str
    request_payload: str
    response_payload: str
    response_length: Optional[int]
    status_code: int
    ip_address: str
    user_agent: str
    user_id: Optional[str]
    user_role: str
    success: bool
    login_history_id: Optional[str]
    created_at: datetime
    login_session: Optional[LoginSession] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "action": self.action,
            "method": self.method,
            "request_payload": self.request_payload,
            "response_payload": self.response_payload,
            "response_length": self.response_length,
            "status_code": self.status_code,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "user_id": self.user_id,
            "user_role": self.user_role,
            "success": self.success,
            "login_history_id": self.login_history_id,
            "createdAt": self.created_at.isoformat(),
            "loginSession": self.login_session.to_dict() if self.login_session else None,
        }
