"""
FastAPI application factory.

Assembles the app, registers all routers, builds the process-wide
RoleRegistry and wires up lifecycle events.  Database schema is
managed by Alembic — NOT create_all.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from npims.controllers.admin_controller import router as admin_router
from npims.controllers.auth_controller import router as auth_router
from npims.core.config import settings
from npims.core.database import SessionFactory, engine
from npims.core.exceptions import PermissionEngineError
from npims.models import Base  # noqa: F401  ensures all models are registered
from npims.rbac.registry import RoleRegistry
from npims.services.role_store import SqlRoleStore

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # One registry per process, shared by every request
    app.state.role_registry = RoleRegistry(SqlRoleStore(SessionFactory))

    # ── Register routers ─────────────────────────────────────────────
    app.include_router(auth_router)
    app.include_router(admin_router)

    # ── Engine errors → HTTP ─────────────────────────────────────────
    @app.exception_handler(PermissionEngineError)
    async def permission_engine_error_handler(request: Request, exc: PermissionEngineError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    # ── Startup / Shutdown ───────────────────────────────────────────
    @app.on_event("startup")
    async def on_startup() -> None:
        """Seed default roles, then warm the role registry.

        NOTE: Database schema is managed by Alembic migrations.
        Run `alembic upgrade head` before starting the app.
        """
        if settings.SEED_DEFAULT_ROLES:
            from npims.rbac.permission_seed import seed

            async with SessionFactory() as session:
                await seed(session)

        roles = await app.state.role_registry.list_roles()
        logger.info("Role registry ready with %d roles.", len(roles))

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await engine.dispose()
        logger.info("Database engine disposed.")

    # ── Health check ─────────────────────────────────────────────────
    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
