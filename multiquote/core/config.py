import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv


class Settings:
    """Centralised application configuration sourced from environment variables."""

    def __init__(self, load_env_file: bool = True) -> None:
        if load_env_file:
            load_dotenv()
        self.database_path = Path(os.getenv("DATABASE_PATH", "data/multiquote.db")).resolve()

        self.jwt_secret = os.getenv("JWT_SECRET", "change-me")
        self.jwt_refresh_secret = os.getenv("JWT_REFRESH_SECRET", "change-me-too")
        self.jwt_algorithm = os.getenv("JWT_ALGORITHM", "HS256")
        self.access_token_ttl_minutes = self._get_int("JWT_ACCESS_TTL_MINUTES", default=60)
        self.refresh_token_ttl_days = self._get_int("JWT_REFRESH_TTL_DAYS", default=15)

        self.verification_code_ttl_minutes = self._get_int("VERIFICATION_CODE_TTL_MINUTES", default=10)
        self.resend_window_minutes = self._get_int("RESEND_WINDOW_MINUTES", default=10)
        self.resend_limit = self._get_int("RESEND_LIMIT", default=3)

        self.smtp_host = os.getenv("SMTP_HOST", "")
        self.smtp_port = self._get_int("SMTP_PORT", default=465)
        self.smtp_user = os.getenv("SMTP_USER", "")
        self.smtp_password = os.getenv("SMTP_PASSWORD", "")
        self.smtp_from_email = os.getenv("SMTP_FROM_EMAIL", "")
        self.email_max_retries = self._get_int("EMAIL_MAX_RETRIES", default=3)
        self.email_retry_backoff_seconds = self._get_float("EMAIL_RETRY_BACKOFF_SECONDS", default=0.5)

        self.geolocation_url = os.getenv("GEOLOCATION_URL", "http://ip-api.com/json/{ip}")
        self.geolocation_timeout_seconds = self._get_float("GEOLOCATION_TIMEOUT_SECONDS", default=2.0)

        self.media_root = Path(os.getenv("MEDIA_ROOT", "data/media")).resolve()
        self.media_base_url = os.getenv("MEDIA_BASE_URL", "/media").rstrip("/")

        self.super_admin_email = os.getenv("SUPER_ADMIN_EMAIL")
        self.super_admin_password = os.getenv("SUPER_ADMIN_PASSWORD")
        self.admin_email = os.getenv("ADMIN_EMAIL")
        self.admin_password = os.getenv("ADMIN_PASSWORD")

        self.default_phone_country_code = os.getenv("DEFAULT_PHONE_COUNTRY_CODE", "234")
        self.cors_allow_origins = self._get_list("CORS_ALLOW_ORIGINS", default=["*"])
        self.log_level = os.getenv("LOG_LEVEL", "INFO")

    @staticmethod
    def _get_int(key: str, default: Optional[int] = None) -> int:
        value = os.getenv(key)
        if value is None:
            if default is None:
                raise RuntimeError(f"Missing required environment variable: {key}")
            return default
        try:
            return int(value)
        except ValueError as exc:
            raise RuntimeError(f"Environment variable {key} must be an integer") from exc

    @staticmethod
    def _get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError as exc:
            raise RuntimeError(f"Environment variable {key} must be a number") from exc

    @staticmethod
    def _get_list(key: str, default: List[str]) -> List[str]:
        value = os.getenv(key)
        if not value:
            return list(default)
        return [item.strip() for item in value.split(",") if item.strip()]
