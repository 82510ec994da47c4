from dataclasses import dataclass

from ..application.services.audit_trail_service import AuditTrailService
from ..application.services.company_service import CompanyService
from ..application.services.login_service import TwoFactorLoginService
from ..application.services.login_session_tracker import LoginSessionTracker
from ..application.services.token_service import TokenService
from ..application.services.user_admin_service import UserAdminService
from .config import Settings
from ..domain.ports.persistence import PersistenceGateway
from ..services.email_service import EmailService
from ..services.geolocation import GeolocationService
from ..services.object_storage import ObjectStorage


@dataclass(slots=True)
class ApplicationContainer:
    """Dependency registry shared across the FastAPI application lifecycle."""

    settings: Settings
    persistence: PersistenceGateway
    email_service: EmailService
    geolocation_service: GeolocationService
    object_storage: ObjectStorage
    token_service: TokenService
    session_tracker: LoginSessionTracker
    login_service: TwoFactorLoginService
    user_admin_service: UserAdminService
    company_service: CompanyService
    audit_trail_service: AuditTrailService
