"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from supportdesk.core.async_utils import background
from supportdesk.core.config import settings
from supportdesk.core.errors import SupportDeskError
from supportdesk.core.redis_client import close_async_redis_client
from supportdesk.core.websocket import start_websocket_event_listener, stop_websocket_event_listener
from supportdesk.db.session import engine

logger = logging.getLogger(__name__)

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,  # Message text never leaves the service
    )
    logging.info("Sentry initialized for error tracking")

# ============================================================================
# Rate Limiting
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from supportdesk.core.rate_limit import limiter


# ============================================================================
# Lifespan
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    await start_websocket_event_listener()
    try:
        yield
    finally:
        await stop_websocket_event_listener()
        try:
            await background.drain(timeout=5.0)
        except TimeoutError:
            logger.warning(f"Shutdown with {background.pending} detached tasks still running")
        await close_async_redis_client()


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="SupportDesk API",
    description="Support ticket conversations with live updates and AI triage",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
    lifespan=lifespan,
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(SupportDeskError)
async def supportdesk_error_handler(request: Request, exc: SupportDeskError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# CORS middleware - must be added before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,  # Required for cookies
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Service-Secret"],
)

# ============================================================================
# Routers
# ============================================================================

from supportdesk.routers import ai, attachments, auth, dashboard, tickets
from supportdesk.routers import websocket as ws_router

app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(tickets.router)
app.include_router(attachments.router)
app.include_router(ai.router)
app.include_router(dashboard.router)
app.include_router(ws_router.router)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
