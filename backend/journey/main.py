# journey engine api
# fastapi app with async mongodb, rate-limited chat, pattern detection and context synthesis

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from journey.config import settings
from journey.errors import EngineError, RateLimitError, field_errors
from journey.services.db import db
from journey.services.tasks import task_queue
from journey.routers import chat, patterns, prompts, journals, mood, cbt, stats

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """startup: connect to mongodb and start the task worker. shutdown: drain and close."""
    logger.info("Starting Journey backend...")
    await db.connect()
    await task_queue.start()
    logger.info("Journey backend ready")
    yield
    logger.info("Shutting down Journey backend...")
    await task_queue.stop()
    await db.close()


app = FastAPI(
    title="Journey API",
    description="Behavioral signals, pattern detection and context-aware companion chat",
    version="0.1.0",
    lifespan=lifespan,
)

# cors: allow frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL, "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After", "X-Response-Time"],
)


@app.exception_handler(RateLimitError)
async def rate_limit_handler(request: Request, exc: RateLimitError):
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers={
            "Retry-After": str(exc.retry_after_seconds),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(exc.reset_at),
        },
    )


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    if exc.status_code >= 500:
        # detail stays in the server log, the client gets a generic message
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}", exc_info=exc.__cause__)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "Failed to process request", "code": exc.code},
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Validation failed", "code": "VALIDATION_ERROR", "details": field_errors(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "code": "INTERNAL_ERROR"},
    )


# register routers
app.include_router(chat.router)
app.include_router(patterns.router)
app.include_router(prompts.router)
app.include_router(journals.router)
app.include_router(mood.router)
app.include_router(cbt.router)
app.include_router(stats.router)


@app.get("/health")
async def health_check():
    """basic health check endpoint"""
    return {"status": "ok", "service": "journey-api"}
