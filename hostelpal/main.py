"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from hostelpal.core.config import settings
from hostelpal.db.session import engine

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
        traces_sample_rate=0.1,  # 10% of requests for performance monitoring
        send_default_pii=False,  # Ticket text and contact details stay out of Sentry
    )
    logging.info("Sentry initialized for error tracking")

# ============================================================================
# Rate Limiting
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from hostelpal.core.rate_limit import limiter

from hostelpal.services import notification_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Let in-flight channel attempts record their outcome
    await notification_service.wait_for_deliveries()


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="HostelPal API",
    description="Hostel complaint ticketing API",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
    lifespan=lifespan,
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware - must be added before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# ============================================================================
# Error Handlers
# ============================================================================


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Field-level 400 for malformed requests."""
    errors = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "form")]
        errors.append({"field": ".".join(loc) or "request", "message": error.get("msg", "Invalid value")})
    return JSONResponse(status_code=400, content={"detail": errors})


@app.exception_handler(StaleDataError)
async def stale_data_handler(request: Request, exc: StaleDataError):
    logger.info("Stale write rejected on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=409, content={"detail": "Ticket was modified concurrently"})


@app.exception_handler(SQLAlchemyError)
async def persistence_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Server error"})


# ============================================================================
# Routers
# ============================================================================

from hostelpal.routers import ai, internal, notifications, reports, tickets, websocket

app.include_router(tickets.router)
app.include_router(notifications.router)
app.include_router(ai.router)
app.include_router(reports.router)

# Internal endpoints (scheduled/cron jobs - protected by INTERNAL_SECRET)
app.include_router(internal.router)

# WebSocket for live ticket updates
app.include_router(websocket.router)

# Locally stored ticket images
if settings.STORAGE_BACKEND == "local":
    from hostelpal.services.storage_service import LOCAL_URL_PREFIX

    app.mount(
        LOCAL_URL_PREFIX,
        StaticFiles(directory=settings.LOCAL_STORAGE_PATH, check_dir=False),
        name="uploads",
    )

# Dev router (ONLY mounted in dev mode)
if settings.ENV == "dev":
    from hostelpal.routers import dev
    app.include_router(dev.router)


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
