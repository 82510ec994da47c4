"""One-time login verification codes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(slots=True)
class VerificationCode:
    id: str
    user_id: str
    token: str
    expires_at: datetime
    resend_attempts: int
    last_attempt_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
