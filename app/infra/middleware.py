"""Request middleware: request ids, access logging and CORS for the console."""

import logging
import time
import uuid
from typing import Callable, List

from fastapi import Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from app.infra.config import config

logger = logging.getLogger("app.request")

REQUEST_ID_HEADER = "X-Request-ID"
RESPONSE_TIME_HEADER = "X-Response-Time-Ms"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Tag every request with an id and log how it went.

    The caller's X-Request-ID is reused when present so console and backend
    logs line up. Headers are never logged (they carry the bearer token).
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        log_fields = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }

        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={**log_fields, "error": str(e), "duration_ms": _elapsed_ms(start_time)},
                exc_info=True,
            )
            raise

        duration_ms = _elapsed_ms(start_time)
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "Request completed",
            extra={**log_fields, "status_code": response.status_code, "duration_ms": duration_ms},
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[RESPONSE_TIME_HEADER] = str(duration_ms)
        return response


def _elapsed_ms(start_time: float) -> int:
    return int((time.time() - start_time) * 1000)


def allowed_origins() -> List[str]:
    """Origins the browser console may call from; wildcard only in development."""
    origins = [origin.strip() for origin in config.CORS_ORIGINS.split(",") if origin.strip()]
    if not origins:
        return ["*"] if config.APP_ENV == "development" else []
    if config.APP_ENV != "development":
        origins = [origin for origin in origins if origin != "*"]
    return origins


def setup_cors(app):
    """Setup CORS middleware."""
    production = config.APP_ENV == "production"
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"] if production else ["*"],
        allow_headers=["Content-Type", "Authorization", REQUEST_ID_HEADER] if production else ["*"],
        expose_headers=[REQUEST_ID_HEADER, RESPONSE_TIME_HEADER],
    )
