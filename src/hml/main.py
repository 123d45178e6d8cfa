"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from hml.admin.router import router as admin_router
from hml.analytics.router import router as analytics_router
from hml.analytics.router import track_router
from hml.auth.router import router as auth_router
from hml.billing.router import router as billing_router
from hml.config import get_settings
from hml.database import close_db, init_db
from hml.email.router import admin_router as admin_emails_router
from hml.email.service import reset_email_service
from hml.health.router import router as health_router
from hml.links.router import router as links_router
from hml.links.router import socials_router
from hml.middleware import setup_middleware
from hml.notifications.router import admin_router as admin_notifications_router
from hml.notifications.router import router as notifications_router
from hml.products.router import public_products_router
from hml.products.router import router as products_router
from hml.promos.router import admin_router as admin_promos_router
from hml.promos.router import router as promos_router
from hml.redis_client import close_redis, init_redis
from hml.uploads.router import router as uploads_router
from hml.users.router import public_router, templates_router, username_router
from hml.users.router import router as users_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    logger.info("app_started", environment=settings.environment, version=settings.app_version)

    yield

    reset_email_service()
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="HereMyLinks API",
        description="Backend API for HereMyLinks, a link-in-bio platform",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(username_router)
    app.include_router(public_router)
    app.include_router(public_products_router)
    app.include_router(templates_router)
    app.include_router(links_router)
    app.include_router(socials_router)
    app.include_router(products_router)
    app.include_router(billing_router)
    app.include_router(promos_router)
    app.include_router(notifications_router)
    app.include_router(uploads_router)
    app.include_router(track_router)
    app.include_router(analytics_router)

    app.include_router(admin_router)
    app.include_router(admin_promos_router)
    app.include_router(admin_notifications_router)
    app.include_router(admin_emails_router)

    app.mount(
        settings.upload_public_prefix,
        StaticFiles(directory=settings.upload_dir, check_dir=False),
        name="uploads",
    )

    return app


app = create_app()
