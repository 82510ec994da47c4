"""Domain models for the Multiquote administrative backend."""

from .audit_log import AuditAction, AuditLog, AuditLogEntry
from .company import Company
from .login_session import ClientMetadata, LoginSession
from .user import ADMIN_ROLES, BasicStatus, User, UserRole
from .verification import VerificationCode

__all__ = [
    "ADMIN_ROLES",
    "AuditAction",
    "AuditLog",
    "AuditLogEntry",
    "BasicStatus",
    "ClientMetadata",
    "Company",
    "LoginSession",
    "User",
    "UserRole",
    "VerificationCode",
]
