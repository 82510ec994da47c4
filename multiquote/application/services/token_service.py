from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt

from ...domain.errors import InvalidAccessToken, InvalidRefreshToken

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class TokenConfig:
    """Signing material handed to the token service at startup."""

    access_secret: str
    refresh_secret: str
    access_ttl: timedelta = timedelta(hours=1)
    refresh_ttl: timedelta = timedelta(days=15)
    algorithm: str = "HS256"


@dataclass(frozen=True, slots=True)
class TokenClaims:
    id: str
    role: str
    login_history_id: Optional[str]


class TokenService:
    """Issues and verifies signed access and refresh tokens."""

    def __init__(self, config: TokenConfig, clock: Callable[[], datetime] = _utcnow) -> None:
        if not config.access_secret or not config.refresh_secret:
            raise RuntimeError("JWT secrets are not configured.")
        if config.access_secret == config.refresh_secret:
            raise RuntimeError("JWT_SECRET and JWT_REFRESH_SECRET must be different.")
        if config.access_secret == "change-me":
            logger.warning("JWT_SECRET is using the default value. Configure a secure secret in production.")
        self._config = config
        self._clock = clock

    def issue_access_token(self, claims: TokenClaims) -> str:
        return self._encode(claims, ACCESS, self._config.access_secret, self._config.access_ttl)

    def issue_refresh_token(self, claims: TokenClaims) -> str:
        return self._encode(claims, REFRESH, self._config.refresh_secret, self._config.refresh_ttl)

    def verify_access_token(self, token: str) -> TokenClaims:
        try:
            return self._decode(token, ACCESS, self._config.access_secret)
        except jwt.ExpiredSignatureError as exc:
            raise InvalidAccessToken(reason="expired") from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidAccessToken() from exc

    def verify_refresh_token(self, token: str) -> TokenClaims:
        try:
            return self._decode(token, REFRESH, self._config.refresh_secret)
        except jwt.InvalidTokenError as exc:
            raise InvalidRefreshToken() from exc

    def _encode(self, claims: TokenClaims, kind: str, secret: str, ttl: timedelta) -> str:
        now = self._clock()
        payload = {
            "id": claims.id,
            "role": claims.role,
            "login_history_id": claims.login_history_id,
            "type": kind,
            "iat": now,
            "exp": now + ttl,
        }
        return jwt.encode(payload, secret, algorithm=self._config.algorithm)

    def _decode(self, token: str, kind: str, secret: str) -> TokenClaims:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[self._config.algorithm],
            options={"require": ["exp", "iat"]},
        )
        if payload.get("type") != kind:
            raise jwt.InvalidTokenError(f"Expected a {kind} token")
        user_id = payload.get("id")
        role = payload.get("role")
        if not isinstance(user_id, str) or not isinstance(role, str):
            raise jwt.InvalidTokenError("Token payload is incomplete")
        return TokenClaims(id=user_id, role=role, login_history_id=payload.get("login_history_id"))
