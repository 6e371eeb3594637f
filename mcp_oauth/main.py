import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mcp_oauth.common.exceptions import attach_exception_handlers
from mcp_oauth.core.config import settings
from mcp_oauth.core.db import AsyncSessionLocal, init_db, close_db
from mcp_oauth.core.scheduler import start_scheduler, shutdown_scheduler
from mcp_oauth.middleware.bearer_auth import BearerAuthMiddleware, path_pattern
from mcp_oauth.routes.admin.admin_routes import router as admin_router
from mcp_oauth.routes.mcp.proxy_routes import router as mcp_router
from mcp_oauth.routes.oauth.oauth_routes import router as oauth_router

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    # ---- Startup ----
    await init_db()
    start_scheduler()
    logger.info(f"OAuth endpoints available at {settings.ISSUER_PATH}/oauth/*")
    yield
    # ---- Shutdown ----
    shutdown_scheduler()
    await close_db()


def create_app(
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
    protected_routes=None,
    use_lifespan: bool = True,
) -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        debug=settings.DEBUG,
        openapi_url="/openapi.json" if settings.DEBUG else None,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url=None,
        lifespan=lifespan if use_lifespan else None,
    )

    # Bearer gate for MCP routes
    app.add_middleware(
        BearerAuthMiddleware,
        protected_routes=protected_routes or (path_pattern(settings.PROTECTED_PATH_PATTERN),),
        session_factory=session_factory,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
        expose_headers=["WWW-Authenticate"],
    )

    # Allowed hosts
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=[host for host in settings.ALLOWED_HOSTS.split(",") if host],
    )

    # 🚀 Mount routers
    app.include_router(oauth_router, prefix=settings.ISSUER_PATH)
    app.include_router(admin_router)
    app.include_router(mcp_router)

    # Attach exception handlers
    attach_exception_handlers(app)

    return app


app = create_app()
