import json
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.audit.views import router as audit_router
from api.auth.views import router as auth_router
from api.catalog.views import routers as catalog_routers
from api.permission_requests.views import router as permission_requests_router
from api.users.views import router as users_router
from config import settings
from core.exceptions import ApiError, ErrorKind
from core.logging import get_logger, setup_logging
from core.security import JWTIdentityProvider
from core.session_cache import SessionCache
from core.session_service import SessionValidationService
from db import AsyncSessionLocal, engine

logger = get_logger(__name__)

STATUS_ERROR_KINDS = {
    status.HTTP_400_BAD_REQUEST: ErrorKind.BAD_REQUEST,
    status.HTTP_401_UNAUTHORIZED: ErrorKind.VERIFICATION_FAILED,
    status.HTTP_403_FORBIDDEN: ErrorKind.FORBIDDEN,
    status.HTTP_404_NOT_FOUND: ErrorKind.NOT_FOUND,
    status.HTTP_405_METHOD_NOT_ALLOWED: ErrorKind.BAD_REQUEST,
    status.HTTP_408_REQUEST_TIMEOUT: ErrorKind.TIMEOUT,
    status.HTTP_409_CONFLICT: ErrorKind.CONFLICT,
    status.HTTP_423_LOCKED: ErrorKind.LOCKED,
}


def get_cors_origins() -> list[str]:
    """Get CORS origins from environment variable or use defaults."""
    cors_env = os.environ.get("CORS_ORIGINS", "")

    # Try to parse as JSON array
    if cors_env:
        try:
            origins = json.loads(cors_env)
            if isinstance(origins, list):
                return origins
        except json.JSONDecodeError:
            # If not valid JSON, treat as comma-separated
            return [o.strip() for o in cors_env.split(",") if o.strip()]

    # Default origins for development
    return [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
    ]


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()

    cache = SessionCache.from_url(settings.REDIS_URL, ttl_seconds=settings.SESSION_CACHE_TTL_SECONDS)
    app.state.session_service = SessionValidationService(
        cache=cache,
        identity_provider=JWTIdentityProvider(),
        session_factory=AsyncSessionLocal,
        ttl_seconds=settings.SESSION_CACHE_TTL_SECONDS,
    )
    logger.info("Session validation service started", extra={"env": settings.APP_ENV})

    yield

    await cache.aclose()
    await engine.dispose()
    logger.info("Session validation service stopped")


app = FastAPI(
    title="Catalog Admin API",
    description="Administration API for the real-estate content catalog",
    version="1.0.0",
    lifespan=lifespan,
)

# Get CORS origins from environment or use defaults
cors_origins = get_cors_origins()

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Error bodies ----------

@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=exc.headers)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    default = ErrorKind.INTERNAL_ERROR if exc.status_code >= 500 else ErrorKind.BAD_REQUEST
    kind = STATUS_ERROR_KINDS.get(exc.status_code, default)
    return JSONResponse(
        status_code=exc.status_code,
        content={"valid": False, "error": kind.value, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "valid": False,
            "error": ErrorKind.VALIDATION_ERROR.value,
            "message": "Request validation failed",
            "details": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", extra={"path": request.url.path})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"valid": False, "error": ErrorKind.INTERNAL_ERROR.value, "message": "Internal server error"},
    )


# Authentication endpoints
app.include_router(auth_router, prefix="/api/v1")

# Administration endpoints
app.include_router(users_router, prefix="/api/v1")
app.include_router(audit_router, prefix="/api/v1")
app.include_router(permission_requests_router, prefix="/api/v1")

# Content collections
for catalog_router in catalog_routers:
    app.include_router(catalog_router, prefix="/api/v1")


# Health check endpoint
@app.get("/health", tags=["system"])
async def health_check(request: Request):
    """Health check endpoint for monitoring. The session cache only degrades it."""
    service = getattr(request.app.state, "session_service", None)
    if service is None:
        return {"status": "starting"}
    session_health = await service.health_check()
    return {"status": "healthy", "session_cache": session_health}
