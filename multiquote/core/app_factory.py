from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .config import Settings
from .container import ApplicationContainer
from .logging import configure_logging
from ..application.services.audit_trail_service import AuditTrailService
from ..application.services.company_service import CompanyService
from ..application.services.login_service import LoginPolicy, TwoFactorLoginService
from ..application.services.login_session_tracker import LoginSessionTracker
from ..application.services.token_service import TokenConfig, TokenService
from ..application.services.user_admin_service import UserAdminService
from ..infrastructure.persistence.sqlite import SQLitePersistence
from ..presentation.api.audit import AuditMiddleware
from ..presentation.api.error_handling import register_exception_handlers
from ..presentation.api.routers import audit_logs as audit_logs_router
from ..presentation.api.routers import auth as auth_router
from ..presentation.api.routers import companies as companies_router
from ..presentation.api.routers import users as users_router
from ..services.email_service import EmailService
from ..services.geolocation import GeolocationService
from ..services.object_storage import ObjectStorage

logger = logging.getLogger(__name__)


def create_application(
    settings: Optional[Settings] = None,
    *,
    email_service: Optional[EmailService] = None,
    geolocation_service: Optional[GeolocationService] = None,
) -> FastAPI:
    settings = settings or Settings()

    app = FastAPI(
        title="Multiquote Admin API",
        lifespan=_create_lifespan(settings, email_service, geolocation_service),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(AuditMiddleware)
    register_exception_handlers(app)

    app.include_router(auth_router.router)
    app.include_router(users_router.router)
    app.include_router(companies_router.router)
    app.include_router(audit_logs_router.router)

    if settings.media_base_url.startswith("/"):
        settings.media_root.mkdir(parents=True, exist_ok=True)
        app.mount(settings.media_base_url, StaticFiles(directory=settings.media_root), name="media")

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        container: ApplicationContainer = app.state.container  # type: ignore[attr-defined]
        return {"ok": True, "email": container.email_service.enabled}

    return app


def _create_lifespan(
    settings: Settings,
    email_override: Optional[EmailService],
    geolocation_override: Optional[GeolocationService],
):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(settings.log_level)
        persistence = SQLitePersistence(settings.database_path)
        email_service = email_override or EmailService(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_username=settings.smtp_user,
            smtp_password=settings.smtp_password,
            from_email=settings.smtp_from_email,
            max_retries=settings.email_max_retries,
            retry_backoff_seconds=settings.email_retry_backoff_seconds,
        )
        geolocation_service = geolocation_override or GeolocationService(
            settings.geolocation_url,
            timeout_seconds=settings.geolocation_timeout_seconds,
        )
        object_storage = ObjectStorage(settings.media_root, settings.media_base_url)
        token_service = TokenService(
            TokenConfig(
                access_secret=settings.jwt_secret,
                refresh_secret=settings.jwt_refresh_secret,
                access_ttl=timedelta(minutes=settings.access_token_ttl_minutes),
                refresh_ttl=timedelta(days=settings.refresh_token_ttl_days),
                algorithm=settings.jwt_algorithm,
            )
        )
        session_tracker = LoginSessionTracker(persistence, geolocation_service)
        login_service = TwoFactorLoginService(
            users=persistence,
            codes=persistence,
            email_service=email_service,
            session_tracker=session_tracker,
            token_service=token_service,
            policy=LoginPolicy(
                code_ttl=timedelta(minutes=settings.verification_code_ttl_minutes),
                resend_window=timedelta(minutes=settings.resend_window_minutes),
                resend_limit=settings.resend_limit,
            ),
        )
        user_admin_service = UserAdminService(
            persistence,
            email_service,
            object_storage,
            phone_country_code=settings.default_phone_country_code,
        )
        company_service = CompanyService(
            persistence,
            object_storage,
            phone_country_code=settings.default_phone_country_code,
        )
        audit_trail_service = AuditTrailService(persistence)

        user_admin_service.ensure_initial_admins(
            (settings.super_admin_email, settings.super_admin_password),
            (settings.admin_email, settings.admin_password),
        )
        purged = persistence.purge_expired_codes(datetime.now(timezone.utc))
        if purged:
            logger.info("Removed %s expired verification codes", purged)

        container = ApplicationContainer(
            settings=settings,
            persistence=persistence,
            email_service=email_service,
            geolocation_service=geolocation_service,
            object_storage=object_storage,
            token_service=token_service,
            session_tracker=session_tracker,
            login_service=login_service,
            user_admin_service=user_admin_service,
            company_service=company_service,
            audit_trail_service=audit_trail_service,
        )

        app.state.container = container  # type: ignore[attr-defined]

        try:
            yield
        finally:
            persistence.close()

    return lifespan
