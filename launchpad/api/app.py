import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from launchpad.api.responses import error_envelope
from launchpad.api.routes import admin, launch, staking, stats, tokens
from launchpad.core.errors import LaunchpadError

logger = logging.getLogger(__name__)

API_PREFIX = "/api"


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(LaunchpadError)
    async def launchpad_error_handler(request: Request, exc: LaunchpadError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=error_envelope(exc.message))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content=error_envelope(_validation_message(exc)))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content=error_envelope(str(exc.detail)))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(status_code=500, content=error_envelope("Internal server error"))


def create_app(launchpad: Any, lifespan: Optional[Any] = None) -> FastAPI:
    """Build the HTTP surface around an already wired application object"""
    app = FastAPI(title="Launchpad", version="0.1.0", lifespan=lifespan)
    app.state.launchpad = launchpad

    app.add_middleware(
        CORSMiddleware,
        allow_origins=launchpad.settings.cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    for module in (launch, tokens, admin, stats, staking):
        app.include_router(module.router, prefix=API_PREFIX)

    return app
