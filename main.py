import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import ALLOWED_ORIGINS, LOG_LEVEL
from app.core.exceptions import KadoError, RateLimitError
from app.core.logging import get_logger, set_trace_id, setup_logging
from app.core.security import gate_decision
from app.routers.admin import router as admin_router
from app.routers.auth import router as auth_router
from app.routers.avatar import router as avatar_router
from app.routers.certificates import router as certificates_router
from app.routers.invitation_codes import router as invitation_codes_router
from app.routers.listings import router as listings_router
from app.routers.orders import router as orders_router
from app.routers.seller import router as seller_router
from app.routers.user import router as user_router
from app.routers.webhooks import router as webhooks_router

setup_logging(LOG_LEVEL)
logger = get_logger(__name__)

# =============================================================================
# APP CONFIGURATION
# =============================================================================

API_VERSION = "1.0.0"
API_TITLE = "Kado API"

app = FastAPI(
    title=API_TITLE,
    version=API_VERSION,
    description="Graded trading card marketplace API",
    docs_url="/docs",
    redoc_url="/redoc",
)

# =============================================================================
# MIDDLEWARE - Session gate, request tracking & timing
# =============================================================================

@app.middleware("http")
async def session_gate(request: Request, call_next):
    """Reject or redirect requests that need a session or a completed profile."""
    decision = gate_decision(request)
    if decision == "unauthorized":
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})
    if decision is not None:
        return RedirectResponse(decision, status_code=307)
    return await call_next(request)


@app.middleware("http")
async def add_request_context(request: Request, call_next):
    """Add trace_id and timing to all requests."""
    trace_id = set_trace_id(request.headers.get("X-Request-ID"))
    start_time = time.perf_counter()

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            "request_failed",
            method=request.method,
            path=request.url.path,
            error_type=type(e).__name__,
        )
        response = JSONResponse(
            status_code=500,
            content={"error": "internal_error", "request_id": trace_id},
        )

    duration_ms = (time.perf_counter() - start_time) * 1000
    response.headers["X-Request-ID"] = trace_id
    response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

    if request.url.path != "/health":
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

    return response


# Outermost, so gate responses also carry CORS headers
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Response-Time"],
)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(KadoError)
async def kado_error_handler(request: Request, exc: KadoError):
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc.message}", exc_info=False, status_code=exc.status_code)
    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(p) for p in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Invalid request", "details": details})


# =============================================================================
# SYSTEM ENDPOINTS - Health
# =============================================================================

@app.get("/health")
def health():
    """Health check endpoint for load balancers & monitoring."""
    return {"status": "ok"}


# =============================================================================
# ROUTERS
# =============================================================================

app.include_router(auth_router)              # /api/auth/*
app.include_router(listings_router)          # /api/listings/*
app.include_router(orders_router)            # /api/orders/*
app.include_router(invitation_codes_router)  # /api/invitation-codes/*
app.include_router(seller_router)            # /api/seller/*
app.include_router(avatar_router)            # /api/avatar/*
app.include_router(user_router)              # /api/user/*
app.include_router(admin_router)             # /api/admin/*
app.include_router(certificates_router)      # /api/certificates/*
app.include_router(webhooks_router)          # /api/webhooks/*
