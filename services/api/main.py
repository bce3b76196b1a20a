"""
Grading Service - Backend API
FastAPI over a document store (JSON files or SQLite).

Install dependencies:
pip install -e ".[test]"

Run server:
uvicorn main:app --host 0.0.0.0 --port 8000
"""

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from settings import get_settings
from core.errors import GradingError
from core.email_sender import Notifier, build_notifier
from core.lifecycle import HierarchyService
from core.transcript import TranscriptService
from core.workflow import GradingWorkflow
from schemas import HealthCheck

# ============================================================================
# BACKEND CONFIGURATION
# ============================================================================
settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

STORAGE_BACKEND = settings.storage_backend.lower()

logger.info(f"🔧 Storage Backend: {STORAGE_BACKEND.upper()}")

# ============================================================================
# STORAGE ADAPTER / NOTIFIER INITIALIZATION (lazy)
# ============================================================================

storage_adapter = None
notifier = None


def build_storage_adapter(cfg=None):
    cfg = cfg or settings
    backend = cfg.storage_backend.lower()

    if backend == "json":
        from adapters.json import JsonStore
        logger.info(f"Initializing JSON store in {cfg.data_dir}...")
        return JsonStore(cfg.data_dir)

    if backend == "sqlite":
        from adapters.sqlite import SqliteStore
        logger.info(f"Initializing SQLite store at {cfg.db_url}...")
        return SqliteStore.from_url(cfg.db_url)

    raise ValueError(f"Unsupported storage backend: {backend}")


# ---- DI helpers (used by routers/*) ----
def get_storage_adapter(_=None):
    global storage_adapter
    if storage_adapter is None:
        storage_adapter = build_storage_adapter()
        logger.info(f"✓ {STORAGE_BACKEND.upper()} store initialized")
    return storage_adapter


def set_storage_adapter(store) -> None:
    """Swap the store (tests, scripts)."""
    global storage_adapter
    storage_adapter = store


def get_notifier() -> Notifier:
    global notifier
    if notifier is None:
        notifier = build_notifier(settings)
    return notifier


def set_notifier(n: Notifier) -> None:
    global notifier
    notifier = n


def get_hierarchy_service() -> HierarchyService:
    return HierarchyService(get_storage_adapter())


def get_workflow_service() -> GradingWorkflow:
    store = get_storage_adapter()
    return GradingWorkflow(store, get_notifier(), HierarchyService(store))


def get_transcript_service() -> TranscriptService:
    store = get_storage_adapter()
    return TranscriptService(store, HierarchyService(store))


# ============================================================================
# FASTAPI APP
# ============================================================================

app = FastAPI(
    title="Grading Service API",
    description="Academic grading hierarchy, grading workflow and final transcripts",
    version="1.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

ALLOWED_ORIGINS = settings.get_origins_list()

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(GradingError)
async def grading_error_handler(request: Request, exc: GradingError):
    if exc.status_code >= 500:
        logger.error(f"✗ {exc.kind} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.kind} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


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
@app.get("/health", response_model=HealthCheck)
async def health_check():
    """Health check endpoint"""
    return HealthCheck(backend=STORAGE_BACKEND, version="1.0")


from routers import schools as schools_router
app.include_router(schools_router.router)

from routers import hierarchy as hierarchy_router
app.include_router(hierarchy_router.router)

from routers import workflow as workflow_router
app.include_router(workflow_router.router)

from routers import results as results_router
app.include_router(results_router.router)


@app.on_event("startup")
async def startup_event():
    logger.info("Grading Service API starting up...")
