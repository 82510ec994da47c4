from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(slots=True)
class ClientMetadata:
    """Device and location details captured at login time."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    device_type: Optional[str] = None


@dataclass(slots=True)
class LoginSession:
    id: str
    user_id: str
    ip_address: Optional[str]
    city: Optional[str]
    region: Optional[str]
    country: Optional[str]
    browser: Optional[str]
    os: Optional[str]
    device_type: Optional[str]
    user_agent: Optional[str]
    login_time: datetime
    logout_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "ipAddress": self.ip_address,
            "city": self.city,
            "region": self.region,
            "country": self.country,
            "browser": self.browser,
            "os": self.os,
            "deviceType": self.device_type,
            "userAgent": self.user_agent,
            "loginTime": self.login_time.isoformat(),
            "logoutTime": self.logout_time.isoformat() if self.logout_time else None,
        }
