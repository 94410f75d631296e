"""FastAPI application for the voice console's tool configuration backend."""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.infra.error_handler import RegistryError, ToolNotFoundError
from app.infra.logging import app_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    app_logger.info("Application starting up")
    yield
    app_logger.info("Application shutting down")


app = FastAPI(
    title="Voice Console Tools API",
    description="""
    Tool configuration backend of the voice-agent console.

    Operators attach tools to an agent: webhooks, booking integrations
    (GoHighLevel, Cal.com) and built-in system actions. This API validates
    drafts, shows the document a draft saves as, lists reusable registry
    tools and saves a tool, returning the agent's updated tool set.

    ## Authentication

    User-scoped endpoints require `Authorization: Bearer <token>`; the token
    is forwarded to the tool registry.
    """,
    version="1.0.0",
    lifespan=lifespan,
    tags_metadata=[
        {
            "name": "Tool Config",
            "description": "Validate, preview and save agent tool configurations",
        },
        {
            "name": "Health",
            "description": "Health check endpoint",
        },
    ],
)

# Setup middleware
from app.infra.middleware import RequestContextMiddleware, setup_cors

app.add_middleware(RequestContextMiddleware)
setup_cors(app)

# Import and register routers
from app.api.routers import health, tool_config

app.include_router(health.router)
app.include_router(tool_config.router)


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )

    components = openapi_schema.setdefault("components", {})
    security_schemes = components.setdefault("securitySchemes", {})
    security_schemes["BearerAuth"] = {
        "type": "http",
        "scheme": "bearer",
        "description": "Bearer token of the console user, forwarded to the tool registry.",
    }

    app.openapi_schema = openapi_schema
    return app.openapi_schema

app.openapi = custom_openapi


# Error handlers
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    return JSONResponse(
        status_code=422,
        content=jsonable_encoder({"detail": exc.errors(), "body": exc.body}),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )


@app.exception_handler(RegistryError)
async def registry_exception_handler(request: Request, exc: RegistryError):
    """Map registry failures: unknown tool is 404, everything else 502."""
    status_code = 404 if isinstance(exc, ToolNotFoundError) else 502
    app_logger.warning(
        "Registry error",
        extra={
            "category": exc.category.value,
            "status_code": exc.status_code,
            "error": exc.message,
            "path": request.url.path,
        },
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "category": exc.category.value},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions."""
    error_id = str(uuid.uuid4())
    app_logger.error(f"Unhandled exception: {exc}", exc_info=True, extra={"error_id": error_id})
    return JSONResponse(
        status_code=500,
        content={"detail": f"Internal server error. Error ID: {error_id}"},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        timeout_keep_alive=30,
        timeout_graceful_shutdown=30,
    )
