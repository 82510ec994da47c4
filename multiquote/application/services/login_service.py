from __future__ import annotations

import logging
import math
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ...domain.errors import (
    AccountInactive,
    CodeExpired,
    InvalidCredentials,
    InvalidOrExpiredCode,
    TooManyAttempts,
    UserInactiveOrMissing,
)
from ...domain.models import LoginSession, User, VerificationCode
from ...domain.ports.persistence import UserRepository, VerificationCodeRepository
from ...services.email_service import EmailService
from .login_session_tracker import LoginSessionTracker, RequestMetadata
from .passwords import burn_password_check, verify_password
from .token_service import TokenClaims, TokenService

logger = logging.getLogger(__name__)

VERIFICATION_REQUIRED = "verification_required"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_verification_code() -> str:
    """Uniform six digit code in 100000-999999."""
    return str(100000 + secrets.randbelow(900000))


@dataclass(frozen=True, slots=True)
class LoginPolicy:
    code_ttl: timedelta = timedelta(minutes=10)
    resend_window: timedelta = timedelta(minutes=10)
    resend_limit: int = 3


@dataclass(slots=True)
class VerifiedLogin:
    access_token: str
    refresh_token: str
    user: User
    login_session: LoginSession


@dataclass(slots=True)
class AuthenticatedCaller:
    user: User
    claims: TokenClaims


class TwoFactorLoginService:
    """Coordinates password check, emailed code, session recording and token issuance."""

    def __init__(
        self,
        users: UserRepository,
        codes: VerificationCodeRepository,
        email_service: EmailService,
        session_tracker: LoginSessionTracker,
        token_service: TokenService,
        policy: LoginPolicy = LoginPolicy(),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._users = users
        self._codes = codes
        self._email = email_service
        self._sessions = session_tracker
        self._tokens = token_service
        self._policy = policy
        self._clock = clock

    # ------------------------------------------------------------------
    async def initiate(self, email: str, password: str) -> str:
        user = self._users.get_user_by_email(email)
        if not user:
            burn_password_check(password)
            raise InvalidCredentials()
        if not user.is_active:
            raise AccountInactive()
        if not verify_password(password, user.password_hash):
            raise InvalidCredentials()

        now = self._clock()
        code, created = self._codes.get_or_create_live_code(
            user.id,
            now=now,
            token=generate_verification_code(),
            expires_at=now + self._policy.code_ttl,
        )
        logger.info(
            "%s verification code for user %s (expires %s)",
            "Issued" if created else "Reusing",
            user.id,
            code.expires_at.isoformat(),
        )
        # Persisted before dispatch: a failed send leaves the code usable by resend.
        await self._dispatch(user, code)
        return VERIFICATION_REQUIRED

    async def verify(self, email: str, code: str, request: RequestMetadata) -> VerifiedLogin:
        user = self._users.get_user_by_email(email)
        if not user:
            raise InvalidCredentials()
        if not user.is_active:
            raise AccountInactive()

        live = self._codes.get_live_code(user.id, self._clock())
        if live is None or not secrets.compare_digest(live.token, code.strip()):
            raise InvalidOrExpiredCode()
        if not self._codes.consume_code(live.id):
            raise InvalidOrExpiredCode()

        session = await self._sessions.start_session(user.id, request)
        claims = TokenClaims(id=user.id, role=user.role.value, login_history_id=session.id)
        return VerifiedLogin(
            access_token=self._tokens.issue_access_token(claims),
            refresh_token=self._tokens.issue_refresh_token(claims),
            user=user,
            login_session=session,
        )

    async def resend(self, email: str) -> str:
        user = self._users.get_user_by_email(email)
        if not user:
            raise InvalidCredentials("Invalid email")
        if not user.is_active:
            raise AccountInactive("Account is inactive")

        now = self._clock()
        code = self._codes.get_live_code(user.id, now)
        if code is None:
            raise CodeExpired()

        attempts = self._next_attempt_count(code, now)
        code = self._codes.update_code_attempts(code.id, resend_attempts=attempts, last_attempt_at=now)
        logger.info("Resending verification code to user %s (attempt %s)", user.id, attempts)
        await self._dispatch(user, code)
        return VERIFICATION_REQUIRED

    def refresh_access_token(self, refresh_token: str) -> str:
        claims = self._tokens.verify_refresh_token(refresh_token)
        user = self._users.get_user_by_id(claims.id)
        if not user or not user.is_active:
            raise UserInactiveOrMissing()
        return self._tokens.issue_access_token(
            TokenClaims(id=user.id, role=user.role.value, login_history_id=claims.login_history_id)
        )

    def authenticate(self, access_token: str) -> AuthenticatedCaller:
        claims = self._tokens.verify_access_token(access_token)
        user = self._users.get_user_by_id(claims.id)
        if not user or not user.is_active:
            raise UserInactiveOrMissing("User inactive or does not exist")
        return AuthenticatedCaller(user=user, claims=claims)

    def logout(self, caller: AuthenticatedCaller) -> Optional[LoginSession]:
        if not caller.claims.login_history_id:
            return None
        return self._sessions.end_session(caller.claims.login_history_id)

    # ------------------------------------------------------------------
    def _next_attempt_count(self, code: VerificationCode, now: datetime) -> int:
        """Apply the sliding resend window; raises TooManyAttempts when exhausted.

        The send that opened the window counts as attempt 1, so a window admits
        ``resend_limit`` further resends.
        """
        if code.last_attempt_at is None:
            return 1
        elapsed = now - code.last_attempt_at
        if elapsed >= self._policy.resend_window:
            return 1
        if code.resend_attempts > self._policy.resend_limit:
            remaining_ms = (self._policy.resend_window - elapsed).total_seconds() * 1000
            raise TooManyAttempts(max(0, math.ceil(remaining_ms / 60000)))
        return code.resend_attempts + 1

    async def _dispatch(self, user: User, code: VerificationCode) -> None:
        ttl_minutes = max(1, int(self._policy.code_ttl.total_seconds() // 60))
        await self._email.send_verification_code_email(user.email, user.full_name, code.token, ttl_minutes)
