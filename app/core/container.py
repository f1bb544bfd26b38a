from dataclasses import dataclass

from ..application.services.identity_service import IdentityService
from ..infrastructure.persistence.sqlite import SQLitePersistence
from ..services.email_service import EmailService
from ..services.rate_limiter import LoginRateLimiter
from .config import Settings
from .security import SessionTokenService


@dataclass(slots=True)
class ApplicationContainer:
    """Dependency registry shared across the FastAPI application lifecycle."""

    settings: Settings
    persistence: SQLitePersistence
    rate_limiter: LoginRateLimiter
    token_service: SessionTokenService
    email_service: EmailService
    identity_service: IdentityService
