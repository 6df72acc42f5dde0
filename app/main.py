from typing import Any, cast

import anyio
import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from app.core.config import settings
from app.core.circuit_breaker import get_circuit_breaker
from app.core.errors import BackendError, ServiceUnavailableError
from app.core.logging_config import get_logger
from app.api import admin, agencies, reviews
from app.api.deps import get_backend_dep, http_status_for
from app.core.retry import user_message_for
from app.services.backend import Backend, check_connection

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Database sessions run on AnyIO worker threads; cap how many.
    thread_limiter = anyio.to_thread.current_default_thread_limiter()  # type: ignore[attr-defined]
    max_workers = max(1, settings.THREADPOOL_MAX_WORKERS)
    if thread_limiter.total_tokens != max_workers:
        logger.info("thread_limiter_configured", previous=thread_limiter.total_tokens, workers=max_workers)
        thread_limiter.total_tokens = max_workers

    # Startup
    logger.info("api_starting", project=settings.PROJECT_NAME, environment=settings.ENVIRONMENT)
    if not settings.SUPABASE_URL:
        from app.db import create_db_and_tables

        create_db_and_tables()
    yield


app = FastAPI(title=settings.PROJECT_NAME, openapi_url=f"{settings.API_V1_STR}/openapi.json", lifespan=lifespan)

# Set all CORS enabled origins
origins = [
    "http://localhost:5173",  # Vite default
    "http://127.0.0.1:5173",
    settings.FRONTEND_URL,  # Dynamic from env
]

# Clean up duplicates and empty strings
origins = list(set([o for o in origins if o]))

# Trust X-Forwarded-* headers from the hosting proxy so redirects keep https
app.add_middleware(cast(Any, ProxyHeadersMiddleware), trusted_hosts=["*"])

app.add_middleware(
    cast(Any, CORSMiddleware),
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BackendError)
@app.exception_handler(ServiceUnavailableError)
@app.exception_handler(httpx.TransportError)
async def backend_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status_code = http_status_for(exc)
    if status_code >= 500:
        logger.warning("backend_request_failed", path=request.url.path, error=str(exc), status_code=status_code)
    return JSONResponse(status_code=status_code, content={"detail": user_message_for(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


app.include_router(agencies.router, prefix=f"{settings.API_V1_STR}/agencies", tags=["agencies"])
app.include_router(admin.router, prefix=f"{settings.API_V1_STR}/admin", tags=["admin"])
app.include_router(reviews.router, prefix=f"{settings.API_V1_STR}/reviews", tags=["reviews"])


@app.get("/")
def root():
    return {"message": f"Welcome to {settings.PROJECT_NAME} API"}


@app.get("/health")
async def health(backend: Backend = Depends(get_backend_dep)):
    """Health check: API up, backend reachable."""
    backend_ok = await check_connection(backend)
    return {"status": "healthy" if backend_ok else "degraded", "backend": backend_ok}


@app.get("/health/circuits")
def health_circuits():
    """State of the shared circuit breaker guarding backend calls."""
    return get_circuit_breaker().snapshot()
