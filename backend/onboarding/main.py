import logging
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from onboarding.config import settings
from onboarding.middleware.exceptions import register_exception_handlers
from onboarding.middleware.security import HTTPSRedirectMiddleware, SecurityHeadersMiddleware
from onboarding.middleware.session import SessionMiddleware
from onboarding.routers import admin, health, users, wizard
from onboarding.services.admin_editor import AdminConfigEditor
from onboarding.services.api_client import BackendClient
from onboarding.services.config_resolver import ConfigResolver
from onboarding.services.data_viewer import UserListViewer
from onboarding.services.progress_store import ProgressStore, RedisProgressStore
from onboarding.services.sessions import WizardRegistry
from onboarding.utils.connections import close_redis, get_redis

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("onboarding")


def configure_services(
    app: FastAPI,
    client: BackendClient,
    store_factory: Callable[[str], ProgressStore],
    refresh_seconds: float | None = None,
) -> None:
    """Attach the per-app services the routers depend on."""
    app.state.backend_client = client
    app.state.wizards = WizardRegistry(client, store_factory)
    app.state.admin_editor = AdminConfigEditor(ConfigResolver(client))
    app.state.user_viewer = UserListViewer(client, interval=refresh_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire services on startup; stop polling and close connections on shutdown."""
    client = BackendClient()
    redis_client = await get_redis()
    configure_services(
        app,
        client,
        lambda session_id: RedisProgressStore(redis_client, session_id),
    )
    viewer: UserListViewer = app.state.user_viewer
    await viewer.start()
    logger.info("Onboarding service started (backend %s)", client.base_url)
    try:
        yield
    finally:
        await viewer.stop()
        await client.aclose()
        await close_redis()
        logger.info("Onboarding service stopped")


def create_app(use_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title="Onboarding",
        description="Multi-step user onboarding wizard with an admin-configurable layout",
        version="0.1.0",
        lifespan=lifespan if use_lifespan else None,
    )

    # ── Exception Handlers ───────────────────────────────────
    register_exception_handlers(app)

    # ── Middleware ───────────────────────────────────────────
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(HTTPSRedirectMiddleware, force_https=False)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Session-ID"],
    )
    # Session context (routers read it through the ContextVar)
    app.add_middleware(SessionMiddleware)

    # ── Routers ──────────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(wizard.router, prefix="/api/wizard", tags=["wizard"])
    app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
    app.include_router(users.router, prefix="/api/users", tags=["users"])

    return app


app = create_app()
