import os
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from ..domain.validators import DEFAULT_INSTITUTIONAL_DOMAINS, DEFAULT_MIN_PASSWORD_SCORE


class Settings:
    """Centralised application configuration sourced from environment variables."""

    def __init__(self) -> None:
        load_dotenv()
        self.database_path = Path(os.getenv("DATABASE_PATH", "data/identity.db")).resolve()

        self.login_max_attempts = self._get_int("LOGIN_MAX_ATTEMPTS", default=5)
        self.login_lockout_minutes = self._get_int("LOGIN_LOCKOUT_MINUTES", default=15)
        self.login_sweep_interval_seconds = self._get_int("LOGIN_SWEEP_INTERVAL_SECONDS", default=300)
        self.password_reset_ttl_minutes = self._get_int("PASSWORD_RESET_TTL_MINUTES", default=60)
        self.password_min_score = self._get_int("PASSWORD_MIN_SCORE", default=DEFAULT_MIN_PASSWORD_SCORE)
        if not 0 <= self.password_min_score <= 5:
            raise RuntimeError("PASSWORD_MIN_SCORE must be between 0 and 5")
        self.institutional_domains = self._get_list(
            "INSTITUTIONAL_DOMAINS", default=list(DEFAULT_INSTITUTIONAL_DOMAINS)
        )
        self.bcrypt_rounds = self._get_int("BCRYPT_ROUNDS", default=12)

        self.session_token_secret = os.getenv("SESSION_TOKEN_SECRET", "change-me")
        self.session_token_exp_minutes = self._get_int("SESSION_TOKEN_EXP_MINUTES", default=60 * 24)

        self.master_email = os.getenv("MASTER_EMAIL")
        self.master_password = os.getenv("MASTER_PASSWORD")
        self.master_name = os.getenv("MASTER_NAME", "Master Admin")
        self.seed_sample_password = os.getenv("SEED_SAMPLE_PASSWORD")

        self.frontend_base_url = os.getenv("FRONTEND_BASE_URL", "http://localhost:3000")
        self.smtp_host = os.getenv("SMTP_HOST", "")
        self.smtp_port = self._get_int("SMTP_PORT", default=587)
        self.smtp_username = os.getenv("SMTP_USERNAME", "")
        self.smtp_password = os.getenv("SMTP_PASSWORD", "")
        self.smtp_from_email = os.getenv("SMTP_FROM_EMAIL", "")
        self.smtp_from_name = os.getenv("SMTP_FROM_NAME", "Sentinela")

        self.cors_allow_origins = self._get_list("CORS_ALLOW_ORIGINS", default=["*"])

    @property
    def login_lockout(self) -> timedelta:
        return timedelta(minutes=self.login_lockout_minutes)

    @property
    def password_reset_ttl(self) -> timedelta:
        return timedelta(minutes=self.password_reset_ttl_minutes)

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
    def _get_list(key: str, default: List[str]) -> List[str]:
        value = os.getenv(key)
        if not value:
            return default
        return [item.strip() for item in value.split(",") if item.strip()]
