"""Main FastAPI application for the career portal."""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from career_portal.api import routes as routes_module
from career_portal.api.models import ErrorResponse
from career_portal.api.routes import all_routers
from career_portal.api.services import PortalServices
from career_portal.config import settings
from career_portal.core.errors import CareerPortalError
from career_portal.store.base import EntityStore
from career_portal.utils.logging import configure_logging, get_logger, request_context

# Configure logging
configure_logging()
logger = get_logger(__name__)

# Engine error code -> HTTP status
ERROR_STATUS_CODES: Dict[str, int] = {
    "not_found": 404,
    "forbidden": 403,
    "ineligible": 422,
    "invalid_transition": 409,
    "conflict": 409,
    "store_unavailable": 503,
}


def error_content(
    error: str,
    message: str,
    reason: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    return ErrorResponse(
        error=error,
        message=message,
        reason=reason,
        details=details,
        timestamp=datetime.now(timezone.utc)
    ).model_dump(mode="json", exclude_none=True)


def create_app(store: Optional[EntityStore] = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info("Starting career portal API")
        services = PortalServices.build(store)
        app.state.services = services
        routes_module.services = services
        logger.info("Application startup completed successfully", store=type(services.store).__name__)

        yield

        logger.info("Shutting down career portal API")
        routes_module.services = None

    app = FastAPI(
        title=f"{settings.app_name} API",
        description="Applications, admissions and candidate matching for the career portal",
        version="1.0.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan
    )

    # Add middleware
    setup_middleware(app)

    # Add exception handlers
    setup_exception_handlers(app)

    # Include routers
    for router in all_routers:
        app.include_router(router, prefix="/api/v1")

    # Add root endpoint
    @app.get("/")
    async def root():
        return {
            "name": settings.app_name,
            "version": "1.0.0",
            "status": "running",
            "docs": "/docs" if settings.debug else "disabled"
        }

    return app


def setup_middleware(app: FastAPI) -> None:
    """Setup application middleware."""

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # Trusted host middleware
    if settings.allowed_hosts:
        app.add_middleware(
            TrustedHostMiddleware,
            allowed_hosts=settings.allowed_hosts
        )

    # Request logging middleware; every event logged while handling the
    # request carries its id and the calling actor
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        request_id = request.headers.get("x-request-id") or uuid4().hex[:12]

        with request_context(
            request_id=request_id,
            actor_id=request.headers.get("x-actor-id"),
            actor_role=request.headers.get("x-actor-role"),
        ):
            logger.debug("Request started", method=request.method, path=request.url.path)
            try:
                response = await call_next(request)
            except Exception as e:
                logger.error(
                    "Request failed",
                    method=request.method,
                    path=request.url.path,
                    error=str(e),
                    duration_seconds=round(loop.time() - start_time, 4)
                )
                raise

            logger.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_seconds=round(loop.time() - start_time, 4)
            )
            response.headers["X-Request-Id"] = request_id
            return response


def setup_exception_handlers(app: FastAPI) -> None:
    """Setup global exception handlers."""

    @app.exception_handler(CareerPortalError)
    async def career_portal_exception_handler(request: Request, exc: CareerPortalError):
        status_code = ERROR_STATUS_CODES.get(exc.code, 400)
        log = logger.error if status_code >= 500 else logger.info
        log(
            "Engine error",
            code=exc.code,
            message=exc.message,
            status_code=status_code,
            url=str(request.url)
        )
        payload = exc.to_dict()
        return JSONResponse(
            status_code=status_code,
            content=error_content(
                payload["error"],
                payload["message"],
                reason=payload.get("reason"),
                details=payload.get("details"),
            )
        )

    # Starlette base class, so routing 404s and 405s are shaped too
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            url=str(request.url)
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_content("http_error", str(exc.detail)),
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(
            "Validation error",
            errors=exc.errors(),
            url=str(request.url)
        )
        return JSONResponse(
            status_code=422,
            content=error_content(
                "validation_error",
                "Request validation failed",
                details={"validation_errors": jsonable_errors(exc.errors())},
            )
        )

    @app.exception_handler(ValidationError)
    async def model_validation_exception_handler(request: Request, exc: ValidationError):
        logger.warning(
            "Model validation error",
            errors=exc.errors(),
            url=str(request.url)
        )
        return JSONResponse(
            status_code=422,
            content=error_content(
                "validation_error",
                "Entity validation failed",
                details={"validation_errors": jsonable_errors(exc.errors())},
            )
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            url=str(request.url)
        )
        return JSONResponse(
            status_code=500,
            content=error_content(
                "internal_error",
                "An unexpected error occurred",
                details={"error_type": type(exc).__name__} if settings.debug else None,
            )
        )


def jsonable_errors(errors) -> list:
    """Validation errors with their exception context stringified."""
    return [
        {key: (str(value) if key == "ctx" else value) for key, value in error.items()}
        for error in errors
    ]


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "career_portal.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_config=None  # Use our custom logging
    )
