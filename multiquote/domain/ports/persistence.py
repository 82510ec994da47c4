from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Tuple

from ..filters import FilterCriteria, Page, PageResult
from ..models import (
    AuditLog,
    AuditLogEntry,
    BasicStatus,
    ClientMetadata,
    Company,
    LoginSession,
    User,
    UserRole,
    VerificationCode,
)


class UserRepository(Protocol):
    """Persistence functions related to user accounts."""

    def get_user_by_email(self, email: str) -> Optional[User]:
        ...

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        ...

    def get_user_by_phone(self, phone_number: str) -> Optional[User]:
        ...

    def create_user(
        self,
        *,
        first_name: str,
        last_name: str,
        email: str,
        password_hash: str,
        role: UserRole,
        status: BasicStatus = BasicStatus.ACTIVE,
        phone_number: Optional[str] = None,
        img: Optional[str] = None,
        signature: Optional[str] = None,
    ) -> User:
        ...

    def update_user(
        self,
        user_id: str,
        *,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        email: Optional[str] = None,
        phone_number: Optional[str] = None,
        password_hash: Optional[str] = None,
        role: Optional[UserRole] = None,
        status: Optional[BasicStatus] = None,
        img: Optional[str] = None,
        signature: Optional[str] = None,
    ) -> User:
        ...

    def list_users(self, criteria: FilterCriteria, page: Page) -> PageResult:
        ...


class VerificationCodeRepository(Protocol):
    """Short-lived login codes. At most one live code per user."""

    def get_or_create_live_code(
        self,
        user_id: str,
        *,
        now: datetime,
        token: str,
        expires_at: datetime,
    ) -> Tuple[VerificationCode, bool]:
        """Return the user's live code, creating it atomically when none exists.

        The boolean is True when a new row was inserted.
        """
        ...

    def get_live_code(self, user_id: str, now: datetime) -> Optional[VerificationCode]:
        ...

    def update_code_attempts(
        self,
        code_id: str,
        *,
        resend_attempts: int,
        last_attempt_at: datetime,
    ) -> VerificationCode:
        ...

    def consume_code(self, code_id: str) -> bool:
        """Delete the code. Returns False when another caller consumed it first."""
        ...

    def purge_expired_codes(self, now: datetime) -> int:
        ...


class LoginSessionRepository(Protocol):
    def create_login_session(
        self,
        user_id: str,
        metadata: ClientMetadata,
        login_time: datetime,
    ) -> LoginSession:
        ...

    def get_login_session(self, session_id: str) -> Optional[LoginSession]:
        ...

    def close_login_session(self, session_id: str, logout_time: datetime) -> Optional[LoginSession]:
        ...


class AuditLogRepository(Protocol):
    def record_audit_log(self, entry: AuditLogEntry) -> AuditLog:
        ...

    def list_audit_logs(self, criteria: FilterCriteria, page: Page) -> PageResult:
        ...


class CompanyRepository(Protocol):
    def create_company(
        self,
        *,
        name: str,
        email: Optional[str] = None,
        phone_number: Optional[str] = None,
        address: Optional[str] = None,
        logo: Optional[str] = None,
    ) -> Company:
        ...

    def get_company(self, company_id: str) -> Optional[Company]:
        ...

    def update_company(
        self,
        company_id: str,
        *,
        name: Optional[str] = None,
        email: Optional[str] = None,
        phone_number: Optional[str] = None,
        address: Optional[str] = None,
        logo: Optional[str] = None,
    ) -> Company:
        ...

    def list_companies(self, criteria: FilterCriteria, page: Page) -> PageResult:
        ...


class PersistenceGateway(
    UserRepository,
    VerificationCodeRepository,
    LoginSessionRepository,
    AuditLogRepository,
    CompanyRepository,
    Protocol,
):
    """Composite gateway combining every persistence concern used by the app."""

    pass
