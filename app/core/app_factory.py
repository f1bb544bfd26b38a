from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings
from .container import ApplicationContainer
from .logging import configure_logging
from .security import SessionTokenService
from ..application.services.identity_service import IdentityPolicy, IdentityService
from ..domain.errors import IdentityError
from ..infrastructure.persistence.sqlite import SQLitePersistence
from ..presentation.api.errors import identity_error_handler
from ..presentation.api.routers import admin as admin_router
from ..presentation.api.routers import auth as auth_router
from ..services.email_service import EmailService, SMTPSettings
from ..services.rate_limiter import LoginRateLimiter

logger = logging.getLogger(__name__)


def create_application(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()

    app = FastAPI(title="Sentinela Identity", lifespan=_create_lifespan(settings))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(IdentityError, identity_error_handler)

    app.include_router(auth_router.router)
    app.include_router(admin_router.router)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        container: ApplicationContainer = app.state.container  # type: ignore[attr-defined]
        return {"ok": True, "accounts": container.persistence.count_accounts()}

    return app


def _build_container(settings: Settings) -> ApplicationContainer:
    persistence = SQLitePersistence(settings.database_path)
    rate_limiter = LoginRateLimiter(
        max_attempts=settings.login_max_attempts,
        lockout=settings.login_lockout,
    )
    token_service = SessionTokenService(
        secret_key=settings.session_token_secret,
        token_exp_minutes=settings.session_token_exp_minutes,
    )
    email_service = EmailService(
        base_url=settings.frontend_base_url,
        smtp=SMTPSettings(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_email=settings.smtp_from_email,
            from_name=settings.smtp_from_name,
        ),
    )
    identity_service = IdentityService(
        persistence=persistence,
        rate_limiter=rate_limiter,
        token_service=token_service,
        notifier=email_service,
        policy=IdentityPolicy(
            password_min_score=settings.password_min_score,
            password_reset_ttl=settings.password_reset_ttl,
            institutional_domains=settings.institutional_domains,
            bcrypt_rounds=settings.bcrypt_rounds,
        ),
    )
    return ApplicationContainer(
        settings=settings,
        persistence=persistence,
        rate_limiter=rate_limiter,
        token_service=token_service,
        email_service=email_service,
        identity_service=identity_service,
    )


async def _sweep_expired(container: ApplicationContainer, interval_seconds: float) -> None:
    """Periodically drop stale lockouts, reset tokens and revocations, off the event loop."""
    while True:
        await asyncio.sleep(interval_seconds)
        now = datetime.now(tz=timezone.utc)
        tasks = (
            ("login attempts", container.rate_limiter.purge_expired, ()),
            ("reset tokens", container.persistence.purge_expired_reset_tokens, (now,)),
            ("session revocations", container.persistence.purge_expired_revocations, (now,)),
        )
        for label, purge, args in tasks:
            try:
                await asyncio.to_thread(purge, *args)
            except Exception:
                logger.exception("Expired-record sweep failed for %s", label)


def _create_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        container = _build_container(settings)
        try:
            container.identity_service.seed_default_accounts(
                settings.master_email,
                settings.master_password,
                settings.master_name,
                sample_password=settings.seed_sample_password,
            )
            app.state.container = container  # type: ignore[attr-defined]

            sweeper = asyncio.create_task(
                _sweep_expired(container, max(1, settings.login_sweep_interval_seconds))
            )
            try:
                yield
            finally:
                sweeper.cancel()
                try:
                    await sweeper
                except asyncio.CancelledError:
                    pass
        finally:
            container.persistence.close()

    return lifespan
