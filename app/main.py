from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from app.routers import clips
from clipvault import __version__
from clipvault.config.settings import ClipVaultConfig
from clipvault.container import ServiceContainer
from clipvault.exceptions import (
    ClipVaultException,
    EmbeddingException,
    IngestionException,
    PersistenceException,
    ProcessingException,
    ValidationException,
)
from clipvault.utils.logging_config import log_manager

STATUS_CODES = {
    ValidationException: 400,
    IngestionException: 502,
    EmbeddingException: 502,
    ProcessingException: 500,
    PersistenceException: 500,
}


def status_for(exc: ClipVaultException) -> int:
    for exc_type, status in STATUS_CODES.items():
        if isinstance(exc, exc_type):
            return status
    return 500


def _error_body(message: str, code: str, details: Optional[dict] = None) -> dict:
    return {"error": message, "code": code, "details": details or {}}


def _configure_logging(config: ClipVaultConfig):
    log_manager.setup_logging(
        level=config.logging.level,
        enable_json=config.logging.enable_json,
        log_file=config.logging.log_file,
        enable_file_logging=config.logging.enable_file_logging,
        max_file_size=config.logging.max_file_size,
        retention_days=config.logging.retention_days,
    )


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """Build the API. Without a container one is assembled from the environment at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services = container or ServiceContainer.from_config()
        _configure_logging(services.config)
        app.state.container = services
        await services.startup()
        try:
            yield
        finally:
            await services.close()

    app = FastAPI(
        title="ClipVault API",
        description="Clip ingestion: trim source videos into frame ranges, store them and index their descriptions",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True
    )

    app.include_router(clips.router)

    @app.exception_handler(ClipVaultException)
    async def clipvault_exception_handler(request: Request, exc: ClipVaultException):
        status = status_for(exc)
        if status >= 500:
            logger.error(f"{request.method} {request.url.path} failed with {exc.error_code}: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
        return JSONResponse(status_code=status, content=_error_body(exc.message, exc.error_code, exc.details))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=_error_body("Invalid request", ValidationException.error_code, {"errors": errors}),
        )

    @app.get("/", tags=["root"])
    async def root():
        """Root endpoint providing API information."""
        return {
            "message": "ClipVault API",
            "version": __version__,
            "description": "Clip ingestion service",
            "docs_url": "/docs",
            "redoc_url": "/redoc",
            "openapi_url": "/openapi.json"
        }

    @app.get("/health", tags=["health"])
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "clipvault"}

    return app


app = create_app()


def main():
    config = ClipVaultConfig()
    uvicorn.run("app.main:app", host=config.host, port=config.port)


if __name__ == "__main__":
    main()
