import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pathtrack.application import (
    SessionService,
    build_session_service,
    configure_session_service,
    get_session_service,
)
from pathtrack.config import Settings
from pathtrack.core.errors import (
    AuthError,
    CacheLoadError,
    JobFailedError,
    JobTimeoutError,
    NetworkError,
    NotFoundError,
    PathTrackError,
)
from pathtrack.routes import reference, sessions

ERROR_STATUS: dict[type[PathTrackError], int] = {
    AuthError: 401,
    NotFoundError: 404,
    JobFailedError: 409,
    JobTimeoutError: 409,
    NetworkError: 502,
    CacheLoadError: 503,
}


def _status_for(exc: PathTrackError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in ERROR_STATUS:
            return ERROR_STATUS[error_type]
    return 500


def create_app(settings: Settings | None = None, service: SessionService | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    configure_session_service(service or build_session_service(settings))

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await get_session_service().aclose()

    app = FastAPI(title="PathTrack Sequence Analysis API", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PathTrackError)
    async def pathtrack_error_handler(request: Request, exc: PathTrackError) -> JSONResponse:
        return JSONResponse(
            status_code=_status_for(exc),
            content={"detail": str(exc), "error": type(exc).__name__},
        )

    app.include_router(sessions.router, prefix="/api")
    app.include_router(reference.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "PathTrack Sequence Analysis API",
                "docs": "/docs",
                "health": "/api/reference",
            }
        )

    return app


app = create_app()
