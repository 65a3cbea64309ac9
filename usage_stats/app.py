# flake8: noqa: E402
from dotenv import load_dotenv

load_dotenv()

import asyncio
import os
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

from .config import config
from .exc import ReportError
from .lib.database import init_database
from .resources.events import router as events_router
from .resources.stats import router as stats_router

logger.remove()
logger.add(sys.stderr, level=config.log_level.upper())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan manager."""
    # Startup
    logger.info("Starting Usage Stats API...")
    try:
        await asyncio.to_thread(init_database)
        logger.info("Database initialization completed successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services during startup: {e}")
        raise

    try:
        yield
    finally:
        # Shutdown
        logger.info("Shutting down Usage Stats API...")


app = FastAPI(
    title="Usage Stats",
    description="Usage analytics for chat client API events",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=config.cors_allow_credentials,
    allow_methods=config.cors_allow_methods,
    allow_headers=[
        "Accept",
        "Accept-Language",
        "Content-Language",
        "Content-Type",
        "Authorization",
    ],
)

app.include_router(events_router)
app.include_router(stats_router)


@app.exception_handler(ReportError)
async def report_error_handler(
    request: Request, exc: ReportError
) -> JSONResponse:
    # The cause was already logged where the report failed
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": exc.public_message},
    )


class HealthResponse(BaseModel):
    status: str
    message: str


@app.get("/health")
async def health() -> HealthResponse:
    """Health check endpoint"""
    return HealthResponse(status="healthy", message="Service is running")


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint"""
    return {"message": f"Welcome to {config.app_name} API"}


if __name__ == "__main__":
    import uvicorn

    port_value = os.getenv("PORT", "8080")
    try:
        port = int(port_value)
    except ValueError:
        logger.warning(
            f"Invalid PORT value '{port_value}', defaulting to 8080"
        )
        port = 8080

    uvicorn.run(app, host="0.0.0.0", port=port)  # noqa: S104
