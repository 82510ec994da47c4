from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from user_agents import parse as parse_user_agent

from ...domain.models import ClientMetadata, LoginSession
from ...domain.ports.persistence import LoginSessionRepository
from ...services.geolocation import GeolocationService

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class RequestMetadata:
    """Raw connection details taken from the inbound request."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def describe_device(user_agent: Optional[str]) -> dict:
    if not user_agent:
        return {"browser": None, "os": None, "device_type": None}
    ua = parse_user_agent(user_agent)
    if ua.is_bot:
        device_type = "bot"
    elif ua.is_tablet:
        device_type = "tablet"
    elif ua.is_mobile:
        device_type = "smartphone"
    elif ua.is_pc:
        device_type = "desktop"
    else:
        device_type = "other"
    return {"browser": ua.browser.family, "os": ua.os.family, "device_type": device_type}


class LoginSessionTracker:
    """Records one login session per successful verification."""

    def __init__(
        self,
        repository: LoginSessionRepository,
        geolocation: GeolocationService,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._geolocation = geolocation
        self._clock = clock

    async def start_session(self, user_id: str, request: RequestMetadata) -> LoginSession:
        location = await self._geolocation.lookup(request.ip_address)
        device = describe_device(request.user_agent)
        metadata = ClientMetadata(
            ip_address=request.ip_address,
            user_agent=request.user_agent,
            city=location.get("city"),
            region=location.get("region"),
            country=location.get("country"),
            **device,
        )
        session = self._repository.create_login_session(user_id, metadata, self._clock())
        logger.info(
            "Login session %s started for user %s (%s, %s)",
            session.id,
            user_id,
            session.browser or "unknown browser",
            session.device_type or "unknown device",
        )
        return session

    def end_session(self, session_id: str) -> Optional[LoginSession]:
        session = self._repository.close_login_session(session_id, self._clock())
        if session:
            logger.info("Login session %s ended", session_id)
        return session
