"""
PostRelay API - FastAPI application entry point.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings, validate_settings
from .database import engine, Base
from . import models  # noqa: F401  registers tables on Base.metadata
from .exceptions import PostRelayError
from .logging_config import api_logger, log_request
from .responses import ApiException, api_exception_handler, postrelay_exception_handler
from .routes import schedule_router, execute_router

settings = get_settings()
validate_settings(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown"""
    # In production, use migrations instead
    Base.metadata.create_all(bind=engine)
    api_logger.info(
        "PostRelay API started",
        environment=settings.environment,
        callback_url=settings.callback_url,
    )
    yield


app = FastAPI(
    title="PostRelay API",
    description="Deferred delivery of social posts through a message broker",
    version="1.0.0",
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
    lifespan=lifespan,
)

app.add_exception_handler(ApiException, api_exception_handler)
app.add_exception_handler(PostRelayError, postrelay_exception_handler)

# Request logging middleware (only in debug mode)
if settings.debug:
    app.add_middleware(log_request(api_logger))

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=[
        "Authorization",
        "Content-Type",
        "Accept",
        "Origin",
    ],
    max_age=3600,
)

# Routes
app.include_router(schedule_router)
app.include_router(execute_router)


@app.get("/api/health")
def health_check():
    """Health check endpoint for load balancers and monitoring."""
    return {
        "status": "healthy",
        "environment": settings.environment,
        "version": "1.0.0",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
