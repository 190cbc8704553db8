"""FastAPI application for the Studio copilot."""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from copilot.api.routers import assistant, health
from copilot.infra.config import config
from copilot.infra.database import dispose_engine
from copilot.infra.logging import app_logger
from copilot.infra.middleware import RequestIDMiddleware, RequestLoggingMiddleware
from copilot.services.thread_store import close_thread_store


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    app_logger.info(
        "Application starting up",
        extra={"app_env": config.APP_ENV, "thread_store": config.THREAD_STORE},
    )
    if not config.OPENAI_API_KEY:
        app_logger.warning("OPENAI_API_KEY is not set; assistant routes will return 500")

    yield

    app_logger.info("Application shutting down")
    await close_thread_store()
    dispose_engine()


app = FastAPI(
    title="Studio Copilot API",
    description="""
    Tool-calling assistant for database work. The assistant inspects schemas,
    reads and writes rows, manages tables and Row Level Security policies
    through a registry of safety-checked tools.
    """,
    version="0.1.0",
    lifespan=lifespan,
    tags_metadata=[
        {
            "name": "Assistant",
            "description": "Chat with the assistant, manage conversation threads and the assistant definition",
        },
        {
            "name": "Health",
            "description": "Health checks and Prometheus metrics",
        },
    ],
)

app.add_middleware(RequestIDMiddleware)
app.add_middleware(RequestLoggingMiddleware)

app.include_router(assistant.router)
app.include_router(health.router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Invalid request body", "detail": exc.errors()},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions."""
    error_id = str(uuid.uuid4())
    app_logger.error(f"Unhandled exception: {exc}", exc_info=True, extra={"error_id": error_id})
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": f"Internal server error. Error ID: {error_id}"},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
