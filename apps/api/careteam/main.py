"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from careteam.core.config import settings
from careteam.core.exceptions import AccessControlError, StorageError
from careteam.core.structured_logging import build_log_context
from careteam.db.session import engine

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
        send_default_pii=False,  # Child and clinician data stays out of Sentry
    )
    logging.info("Sentry initialized for error tracking")

# ============================================================================
# Rate Limiting
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from careteam.core.rate_limit import limiter

# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Care Team API",
    description="Care team access control for children's health records",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware - must be added before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,  # Required for cookies
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Requested-With"],
)


# ============================================================================
# Error Handling
# ============================================================================

@app.exception_handler(AccessControlError)
async def access_control_error_handler(request: Request, exc: AccessControlError) -> JSONResponse:
    """Render domain errors as {"detail", "code"} with the error's status."""
    if isinstance(exc, StorageError):
        logger.error(
            "Storage failure: %s",
            exc.__cause__ or exc,
            extra=build_log_context(route=request.url.path, method=request.method),
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Database faults outside a transaction block; never leak driver messages."""
    logger.exception(
        "Unhandled database error",
        exc_info=exc,
        extra=build_log_context(route=request.url.path, method=request.method),
    )
    return JSONResponse(
        status_code=StorageError.status_code,
        content={"detail": StorageError.default_message, "code": StorageError.code},
    )


# ============================================================================
# Routers
# ============================================================================

from careteam.routers import audit_router, children_router, invites_router, me_router

# Guardian care team management
app.include_router(children_router)

# Invitation preview/accept/decline (preview is public)
app.include_router(invites_router)

# Professional's own patients
app.include_router(me_router)

# Audit Trail (Admin only)
app.include_router(audit_router)


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
