"""
FastAPI application factory.
create_app() is the single entry point for building the app.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.asynchronous.mongo_client import AsyncMongoClient

from config import AppSettings
from errors import register_error_handlers
from infrastructure.email.console import ConsoleEmailProvider
from infrastructure.email.protocol import EmailProvider
from infrastructure.email.zeptomail import ZeptoMailProvider
from infrastructure.http_client import HttpClient
from repositories.indexes import ensure_indexes
from routes.auth_routes import router as auth_router
from routes.health_routes import router as health_router
from routes.user_routes import router as user_router
from shared.logging import get_logger, setup_logging

log = get_logger(__name__)


def build_email_provider(
    settings: AppSettings,
) -> tuple[EmailProvider, Optional[HttpClient]]:
    """Return the configured provider and the HTTP client it owns, if any."""
    if settings.email.email_provider == "zeptomail":
        http_client = HttpClient(timeout=settings.email.email_timeout_seconds)
        provider = ZeptoMailProvider(
            settings.email,
            http_client,
            app_name=settings.app_name,
            app_url=settings.app_url,
            expiry_minutes=max(1, settings.otp.otp_expiry_seconds // 60),
        )
        return provider, http_client
    return ConsoleEmailProvider(echo_codes=settings.is_development), None


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Create and return a fully configured FastAPI application."""
    if settings is None:
        settings = AppSettings()

    setup_logging(
        log_level=settings.logging.log_level,
        log_format=settings.logging.log_format,
        env=settings.env,
    )

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
            profiles_sample_rate=settings.sentry.sentry_profile_sample_rate,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        mongo_client: AsyncMongoClient = AsyncMongoClient(settings.db.mongodb_uri)
        app.state.mongo_client = mongo_client
        app.state.db = mongo_client[settings.db.db_name]

        email_provider, email_http = build_email_provider(settings)
        app.state.email_provider = email_provider

        await ensure_indexes(app.state.db)
        log.info(
            "app_started",
            db_name=settings.db.db_name,
            email_provider=settings.email.email_provider,
            session_transport=settings.jwt.session_transport,
        )

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        if email_http is not None:
            await email_http.aclose()
        await mongo_client.close()
        log.info("app_stopped")

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Browser client needs credentialed requests for the session cookies
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(auth_router, prefix=settings.api_prefix)
    app.include_router(user_router, prefix=settings.api_prefix)

    return app
