# meetme/main.py
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from concurrent.futures import ThreadPoolExecutor
import asyncio
import logging
import os

from meetme.config.settings import settings
from meetme.delivery.api.editor import router
from meetme.domain.editor_service import EditorService
from meetme.infrastructure.backend.client import BackendClient
from meetme.infrastructure.database.repository import TemplateRepository

logging.getLogger("PIL").setLevel(logging.WARNING)
logger = logging.getLogger("uvicorn.error")

# --- Lazy service bootstrap state ---
_service_lock = asyncio.Lock()

async def _ensure_service(app: FastAPI) -> None:
    if getattr(app.state, "editor_service", None) is not None:
        return
    async with _service_lock:
        if getattr(app.state, "editor_service", None) is not None:
            return
        from meetme.config.database import AsyncSessionLocal, init_db

        logger.info("Initializing EditorService (lazy-init)...")
        await init_db()
        repository = TemplateRepository(AsyncSessionLocal)
        backend = BackendClient()
        app.state.backend_client = backend
        app.state.editor_service = EditorService(
            templates=repository,
            limiter=backend,
            analytics=backend,
            placeholders=repository,
            executor=app.state.executor,
        )
        logger.info("Service initialization complete.")

@asynccontextmanager
async def lifespan(app: FastAPI):
    max_workers = min(4, os.cpu_count() or 1)  # Conservative limit
    app.state.executor = ThreadPoolExecutor(max_workers=max_workers)
    logger.info(f"Service '{settings.PROJECT_NAME}' starting (mode: {settings.ENVIRONMENT}).")
    logger.info(f"Shared ThreadPoolExecutor created with {max_workers} workers.")
    yield
    backend = getattr(app.state, "backend_client", None)
    if backend is not None:
        await backend.close()
    logger.info("Shutting down ThreadPoolExecutor...")
    app.state.executor.shutdown(wait=True)
    logger.info("Service stopped.")

app = FastAPI(
    title="MeetMe Compositing Service",
    description="Photo-frame compositing: interactive placement, live preview and full-resolution export",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_HOSTS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Lazy-load only for API routes
@app.middleware("http")
async def lazy_boot(request: Request, call_next):
    if request.url.path.startswith(settings.API_V1_STR):
        await _ensure_service(request.app)
    return await call_next(request)

app.include_router(router, prefix=settings.API_V1_STR)

@app.get("/")
async def root():
    return {"message": "MeetMe Compositing Service", "version": "1.0.0", "status": "ok"}

@app.get("/health")
async def health_check():
    return {
        "status": "ok",
        "service": "MeetMe 1.0",
        "service_ready": getattr(app.state, "editor_service", None) is not None,
    }
