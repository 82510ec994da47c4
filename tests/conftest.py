import asyncio
import inspect
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from multiquote.application.services.login_service import LoginPolicy, TwoFactorLoginService
from multiquote.application.services.login_session_tracker import LoginSessionTracker
from multiquote.application.services.passwords import hash_password
from multiquote.application.services.token_service import TokenConfig, TokenService
from multiquote.core.app_factory import create_application
from multiquote.core.config import Settings
from multiquote.domain.errors import UpstreamDispatchFailure
from multiquote.domain.models import BasicStatus, UserRole
from multiquote.infrastructure.persistence.sqlite import SQLitePersistence
from multiquote.services.email_service import EmailService
from multiquote.services.geolocation import GeolocationService

ACCESS_SECRET = "access-secret-for-tests-only"
REFRESH_SECRET = "refresh-secret-for-tests-only"
SUPER_ADMIN_EMAIL = "root@example.com"
SUPER_ADMIN_PASSWORD = "SuperSecret1!"
ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "AdminSecret1!"


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


class RecordingEmailService(EmailService):
    """Captures outgoing mail instead of talking to SMTP."""

    def __init__(self) -> None:
        super().__init__()
        self.sent: List[Dict[str, Optional[str]]] = []
        self.codes: Dict[str, str] = {}
        self.passwords: Dict[str, str] = {}
        self.fail = False

    async def send(self, to_email, subject, text_body, html_body=None):
        if self.fail:
            raise UpstreamDispatchFailure()
        self.sent.append({"to": to_email, "subject": subject, "text": text_body, "html": html_body})

    async def send_verification_code_email(self, to_email, full_name, code, ttl_minutes):
        await super().send_verification_code_email(to_email, full_name, code, ttl_minutes)
        self.codes[to_email.lower()] = code

    async def send_user_password_email(self, to_email, first_name, password, reason="create"):
        await super().send_user_password_email(to_email, first_name, password, reason)
        self.passwords[to_email.lower()] = password


class StubGeolocationService(GeolocationService):
    def __init__(self) -> None:
        super().__init__("")
        self.lookups: List[Optional[str]] = []

    async def lookup(self, ip):
        self.lookups.append(ip)
        return {"city": "Lagos", "region": "Lagos", "country": "Nigeria"}


class FrozenClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def settings(tmp_path):
    configured = Settings(load_env_file=False)
    configured.database_path = tmp_path / "multiquote.db"
    configured.media_root = tmp_path / "media"
    configured.media_base_url = "/media"
    configured.jwt_secret = ACCESS_SECRET
    configured.jwt_refresh_secret = REFRESH_SECRET
    configured.super_admin_email = SUPER_ADMIN_EMAIL
    configured.super_admin_password = SUPER_ADMIN_PASSWORD
    configured.admin_email = ADMIN_EMAIL
    configured.admin_password = ADMIN_PASSWORD
    configured.cors_allow_origins = ["*"]
    return configured


@pytest.fixture
def email_service():
    return RecordingEmailService()


@pytest.fixture
def geolocation_service():
    return StubGeolocationService()


@pytest.fixture
def client(settings, email_service, geolocation_service):
    app = create_application(
        settings,
        email_service=email_service,
        geolocation_service=geolocation_service,
    )
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def persistence(tmp_path):
    gateway = SQLitePersistence(tmp_path / "unit.db")
    yield gateway
    gateway.close()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def token_service():
    return TokenService(TokenConfig(access_secret=ACCESS_SECRET, refresh_secret=REFRESH_SECRET))


@pytest.fixture
def login_service(persistence, email_service, geolocation_service, token_service, clock):
    tracker = LoginSessionTracker(persistence, geolocation_service, clock=clock)
    return TwoFactorLoginService(
        users=persistence,
        codes=persistence,
        email_service=email_service,
        session_tracker=tracker,
        token_service=token_service,
        policy=LoginPolicy(),
        clock=clock,
    )


@pytest.fixture
def make_user(persistence):
    def _make_user(
        email: str = "jo@example.com",
        password: str = "Password1!",
        role: UserRole = UserRole.USER,
        status: BasicStatus = BasicStatus.ACTIVE,
    ):
        return persistence.create_user(
            first_name="Jo",
            last_name="Bloggs",
            email=email,
            password_hash=hash_password(password),
            role=role,
            status=status,
        )

    return _make_user


def login(client: TestClient, email_service: RecordingEmailService, email: str, password: str) -> dict:
    """Run the full two-step login and return the verify response body."""
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    code = email_service.codes[email.lower()]
    response = client.post("/auth/verify-login-code", json={"email": email, "code": code})
    assert response.status_code == 200, response.text
    return response.json()


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
