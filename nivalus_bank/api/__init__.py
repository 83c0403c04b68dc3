"""
Nivalus Bank API Application Factory
"""

import time
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from .auth import router as auth_router
from .transfers import router as transfers_router
from .admin import router as admin_router
from .. import __version__
from ..config import get_config
from ..logging_config import correlation_context, get_logger, log_action, setup_logging


logger = get_logger("nivalus.api")


class RequestLogger:
    """HTTP middleware logging method, path, status and duration"""

    async def __call__(self, request: Request, call_next):
        correlation_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        started = time.perf_counter()
        with correlation_context(correlation_id):
            response = await call_next(request)
        duration_ms = round((time.perf_counter() - started) * 1000, 2)

        log_action(
            logger, "info", f"{request.method} {request.url.path}",
            action="http_request", resource=request.url.path,
            correlation_id=correlation_id,
            extra={
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": duration_ms
            }
        )
        response.headers["X-Request-ID"] = correlation_id
        return response


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report request body and query validation failures as 400"""
    errors = exc.errors()
    first_error = errors[0] if errors else {}
    field = ".".join(str(loc) for loc in first_error.get("loc", []) if loc != "body")
    message = first_error.get("msg", "Validation error")
    if field:
        message = f"{field}: {message}"

    log_action(
        logger, "warning", "Request validation failed",
        action="validate", resource=request.url.path, extra={"field": field}
    )
    return JSONResponse(status_code=400, content={"detail": message})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    config = get_config()

    app = FastAPI(
        title="Nivalus Bank API",
        description="Retail banking core: accounts, PIN-confirmed transfers and admin console",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(RequestLogger())
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    app.include_router(auth_router, prefix="/api", tags=["Auth"])
    app.include_router(transfers_router, prefix="/api", tags=["Transfers"])
    app.include_router(admin_router, prefix="/api/admin", tags=["Admin"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "nivalus_bank_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Nivalus Bank API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "auth": "/api/login",
                "transfer": "/api/transfer",
                "transactions": "/api/transactions",
                "admin": "/api/admin",
            }
        }

    return app


app = create_app()


def run_server(host: str = None, port: int = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    setup_logging(config.log_level)
    uvicorn.run(
        "nivalus_bank.api:app",
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level=config.log_level.lower()
    )
