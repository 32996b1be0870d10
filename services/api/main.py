"""
Observation Tracker - Backend API
FastAPI service for local-first observation entry with two remote store
backends: local SQLite and a PostgREST/storage-bucket REST API.

Install dependencies:
pip install -e .

Run server:
uvicorn main:app --host 0.0.0.0 --port 8000
"""

import contextvars
import logging
import os
import time
import uuid
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from adapters.base import RemoteStore, RemoteStoreError
from core.projects import ProjectRegistry
from core.sessions import SessionManager
from core.suggestions import SuggestionIndex
from settings import Settings, get_settings

# ========== Request Context for Tracing ==========
request_id_var = contextvars.ContextVar('request_id', default=None)
request_start_time_var = contextvars.ContextVar('request_start_time', default=None)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

APP_VERSION = "1.0"

# ============================================================================
# REMOTE STORE INITIALIZATION
# ============================================================================

remote_store: Optional[RemoteStore] = None
session_manager: Optional[SessionManager] = None
project_registry: Optional[ProjectRegistry] = None
suggestion_index: Optional[SuggestionIndex] = None


def build_remote_store(settings: Settings) -> RemoteStore:
    backend = settings.storage_backend.lower()

    if backend == "rest":
        from adapters.rest import RestRemoteStore

        if not settings.rest_url or not settings.rest_api_key:
            raise ValueError("REST backend requires REST_URL and REST_API_KEY")

        logger.info(f"Initializing REST remote store at {settings.rest_url}")
        return RestRemoteStore(
            base_url=settings.rest_url,
            api_key=settings.rest_api_key,
            bucket=settings.rest_bucket,
            timeout=settings.rest_timeout,
            retry_attempts=settings.rest_retry_attempts,
        )

    if backend == "sqlite":
        from adapters.sqlite import SqliteRemoteStore

        logger.info("Initializing SQLite remote store")
        return SqliteRemoteStore.from_url(
            db_url=settings.db_url,
            blob_dir=settings.blob_dir,
            public_base_url=settings.public_blob_base_url,
        )

    raise ValueError(f"Unknown STORAGE_BACKEND: {backend}")


# ---- DI helpers (used by routers/*) ----

def get_remote_store() -> RemoteStore:
    if remote_store is None:
        raise HTTPException(status_code=503, detail="Remote store not initialized")
    return remote_store


def get_session_manager() -> SessionManager:
    if session_manager is None:
        raise HTTPException(status_code=503, detail="Session manager not initialized")
    return session_manager


def get_project_registry() -> ProjectRegistry:
    if project_registry is None:
        raise HTTPException(status_code=503, detail="Project registry not initialized")
    return project_registry


def get_suggestion_index() -> SuggestionIndex:
    if suggestion_index is None:
        raise HTTPException(status_code=503, detail="Suggestions not initialized")
    return suggestion_index


def resolve_local_blob(url: str) -> Optional[Path]:
    """
    Map a public blob URL served by this API back to its file, so exports
    don't need an HTTP round-trip to ourselves.
    """
    settings = get_settings()
    if settings.storage_backend.lower() != "sqlite":
        return None
    prefix = settings.public_blob_base_url.rstrip("/") + "/"
    if not url.startswith(prefix):
        return None
    rel = Path(url[len(prefix):])
    if rel.is_absolute() or ".." in rel.parts:
        return None
    path = Path(settings.blob_dir) / rel
    return path if path.is_file() else None


# ============================================================================
# FASTAPI APP
# ============================================================================

app = FastAPI(
    title="Observation Tracker API",
    description="Local-first observation entry with cache, sync and PDF/Excel/CSV export",
    version=APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc"
)

# ========== Request Tracing Middleware ==========
@app.middleware("http")
async def request_tracing_middleware(request, call_next):
    """Add request_id and timing to all requests."""
    request_id = str(uuid.uuid4())[:8]
    request_id_var.set(request_id)
    request_start_time_var.set(time.time())

    response = await call_next(request)

    latency = time.time() - request_start_time_var.get()
    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} "
        f"({round(latency * 1000, 2)}ms) [{request_id}]"
    )

    response.headers["X-Request-ID"] = request_id
    return response


ALLOWED_ORIGINS = get_settings().get_origins_list()

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Export-Warning", "Content-Disposition"],
)


@app.exception_handler(RemoteStoreError)
async def remote_store_exception_handler(request, exc: RemoteStoreError):
    logger.error(f"Remote store error on {request.url.path}: {exc.detail}")
    # backend auth/conflict errors are our upstream's problem, not the caller's
    code = exc.status_code if exc.status_code in (400, 404, 503, 504) else status.HTTP_502_BAD_GATEWAY
    return JSONResponse(status_code=code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"}
    )

# ============================================================================
# ENDPOINTS
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    backend = get_settings().storage_backend.lower()
    try:
        await get_remote_store().ping()
        return {
            "status": "healthy",
            "backend": backend,
            "sessions": len(session_manager) if session_manager else 0,
            "version": APP_VERSION
        }
    except (RemoteStoreError, HTTPException) as e:
        logger.error(f"Health check failed: {str(e)}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "backend": backend, "error": str(e)}
        )


@app.get("/healthz")
async def healthz():
    """
    Liveness probe: is the process alive and responding?
    """
    return {
        "status": "ok",
        "timestamp": time.time(),
        "version": APP_VERSION
    }


@app.get("/readyz")
async def readyz():
    """
    Readiness probe: can the remote store be reached?
    Returns 200 if ready, 503 if not ready.
    """
    backend = get_settings().storage_backend.lower()
    try:
        await get_remote_store().ping()
        return {
            "status": "ready",
            "backend": backend,
            "timestamp": time.time()
        }
    except (RemoteStoreError, HTTPException) as e:
        logger.error(f"Readiness check failed: {str(e)}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "backend": backend,
                "error": str(e),
                "timestamp": time.time()
            }
        )


@app.get("/")
async def root():
    """API root endpoint"""
    return {
        "message": "Observation Tracker API",
        "version": APP_VERSION,
        "backend": get_settings().storage_backend.lower(),
        "status": "running",
        "docs": "/docs"
    }


@app.get("/blobs/{path:path}")
async def get_blob(path: str):
    """Serve photos stored by the SQLite backend."""
    settings = get_settings()
    rel = Path(path)
    if settings.storage_backend.lower() != "sqlite" or rel.is_absolute() or ".." in rel.parts:
        raise HTTPException(status_code=404, detail="Not found")
    target = Path(settings.blob_dir) / rel
    if not target.is_file():
        raise HTTPException(status_code=404, detail="Not found")
    return FileResponse(target)


from routers import projects as projects_router
app.include_router(projects_router.router)

from routers import sessions as sessions_router
app.include_router(sessions_router.router)

from routers import rows as rows_router
app.include_router(rows_router.router)

from routers import sync as sync_router
app.include_router(sync_router.router)

from routers import imports as imports_router
app.include_router(imports_router.router)

from routers import reports as reports_router
app.include_router(reports_router.router)

from routers import suggestions as suggestions_router
app.include_router(suggestions_router.router)

startup_time = time.time()


@app.on_event("startup")
async def startup_event():
    global startup_time, remote_store, session_manager, project_registry, suggestion_index
    startup_time = time.time()
    settings = get_settings()

    remote_store = build_remote_store(settings)
    session_manager = SessionManager(
        remote_store,
        cache_dir=settings.cache_dir,
        load_quiet_period=settings.load_quiet_period,
        sync_cooldown=settings.sync_cooldown,
    )
    project_registry = ProjectRegistry(
        remote_store,
        universal_password=settings.universal_password or None,
        bcrypt_rounds=settings.bcrypt_rounds,
    )
    suggestion_index = SuggestionIndex(ttl=settings.suggestions_cache_ttl)

    logger.info("Observation Tracker API starting up...")
    logger.info(f"Storage Backend: {settings.storage_backend.upper()}")
    if settings.storage_backend.lower() == "sqlite":
        logger.info(f"Database: {settings.db_url.split('://')[0]}")
    logger.info(f"Local cache dir: {settings.cache_dir}")
    logger.info(f"Allowed origins: {ALLOWED_ORIGINS}")


@app.on_event("shutdown")
async def shutdown_event():
    global remote_store, session_manager
    logger.info("Observation Tracker API shutting down...")
    if session_manager is not None:
        session_manager.close_all()
        session_manager = None
    if remote_store is not None:
        await remote_store.aclose()
        remote_store = None


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run("main:app", host="0.0.0.0", port=port)
