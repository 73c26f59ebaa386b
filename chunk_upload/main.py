"""
Main FastAPI application entry point
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import router
from .core import Settings, UploadError, settings as default_settings
from .services import SessionSweeper, UploadService

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


async def upload_error_handler(request: Request, exc: UploadError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.message}
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'][1:]) or 'body'}: {err['msg']}"
        for err in exc.errors()
    )
    return JSONResponse(
        status_code=400,
        content={"error": "VALIDATION_ERROR", "detail": problems}
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application with its own upload service and sweeper"""
    settings = settings or default_settings
    service = UploadService.from_settings(settings)
    sweeper = SessionSweeper(service, interval=settings.SWEEP_INTERVAL_SECONDS)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup/shutdown"""
        logger.info(f"Starting {settings.APP_TITLE}...")
        logger.info(f"Chunks stored in {settings.CHUNKS_DIR}, merged files in {settings.UPLOAD_DIR}")
        sweeper.start()

        yield

        logger.info(f"Shutting down {settings.APP_TITLE}...")
        await sweeper.stop()

    app = FastAPI(
        title=settings.APP_TITLE,
        description=settings.APP_DESCRIPTION,
        version=settings.APP_VERSION,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.upload_service = service
    app.state.sweeper = sweeper

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(UploadError, upload_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.include_router(router)

    @app.get("/health")
    async def health():
        """Health check endpoint"""
        return {"status": "healthy", "sessions": len(service.registry)}

    return app


def main():
    import uvicorn

    configure_logging(default_settings)
    uvicorn.run(
        create_app(default_settings),
        host=default_settings.SERVER_HOST,
        port=default_settings.SERVER_PORT,
        log_level=default_settings.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    main()
