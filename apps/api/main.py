# FastAPI entrypoint with all necessary routes and middleware

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from loguru import logger

from auth.auth_manager import auth_manager
from auth.auth_routes import router as auth_router
from auth.security_middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from core.config import settings
from core.database import DatabaseManager
from core.exceptions import DomainError, StoreError
from core.logging_config import setup_logging
from core.observability import observability
from documents.doc_routes import router as files_router

# Initialize FastAPI app
app = FastAPI(
    title="Document Vault API",
    description="Role-based access to client documents",
    version="1.0.0",
)

# ==================== MIDDLEWARE STACK ====================

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

# ==================== CORS MIDDLEWARE ====================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.frontend_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin"],
    expose_headers=["Content-Disposition", "Content-Type", "Content-Length"],
    max_age=86400,
)

# ==================== EXCEPTION HANDLERS ====================


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if isinstance(exc, StoreError):
        # Cause stays in the log, the caller only gets the generic message
        logger.error(f"[{exc.operation}] {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in exc.errors()
    ]
    logger.warning(f"[VALIDATION] {request.method} {request.url.path}: {details}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request", "details": details},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )

# ==================== ROUTERS ====================

app.include_router(auth_router)         # /auth
app.include_router(files_router)        # /files

# ==================== ROOT ENDPOINTS ====================


@app.get("/")
async def root():
    """Root endpoint - returns simple welcome message."""
    return {
        "message": "Document Vault API",
        "status": "running",
        "docs_url": "/docs",
    }


@app.get("/health")
async def health():
    if not DatabaseManager.health_check():
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "database": "disconnected"},
        )
    return {"status": "healthy", "database": "connected"}


@app.get("/metrics")
async def metrics():
    return observability.snapshot()

# ==================== STARTUP EVENTS ====================


@app.on_event("startup")
async def startup_event():
    """Initialize on startup."""
    setup_logging(settings.log_level, settings.log_dir)

    try:
        logger.info("Initializing database...")
        DatabaseManager.initialize()
    except Exception as e:
        logger.error(f"Database init failed: {e}")
        raise

    if settings.admin_email and settings.admin_password:
        with DatabaseManager.session_scope() as db:
            auth_manager.seed_admin(
                db, settings.admin_email, settings.admin_password, settings.admin_name
            )


@app.on_event("shutdown")
async def shutdown_event():
    DatabaseManager.dispose()
    logger.info("Database connections closed")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("apps.api.main:app", host="0.0.0.0", port=8000)
