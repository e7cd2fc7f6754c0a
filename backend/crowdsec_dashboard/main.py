from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
import logging
from contextlib import asynccontextmanager

from crowdsec_dashboard.config import get_settings
from crowdsec_dashboard.database import check_db_connection, init_db
from crowdsec_dashboard.api.decision_routes import router as decision_router
from crowdsec_dashboard.api.host_routes import router as host_router
from crowdsec_dashboard.api.user_routes import router as user_router
from crowdsec_dashboard.api.sse_routes import router as sse_router
from crowdsec_dashboard.lapi import LapiError, get_lapi_client
from crowdsec_dashboard.metrics import metrics_router, metrics_middleware
from crowdsec_dashboard.middleware.auth import get_api_key
from crowdsec_dashboard.services.scheduler import get_scheduler, start_scheduler, stop_scheduler
from crowdsec_dashboard.logging_config import setup_logging, log_requests_middleware
from crowdsec_dashboard.error_handlers import register_error_handlers

settings = get_settings()

# Configure logging with rotation
setup_logging(
    log_level=settings.log_level,
    log_dir=settings.log_dir,
    app_name="crowdsec-dashboard",
    enable_json=settings.log_json
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown tasks"""
    logger.info("Starting application...")

    init_db()

    start_scheduler()

    yield

    logger.info("Shutting down application...")
    stop_scheduler()


app = FastAPI(
    title=settings.app_name,
    description="CrowdSec decision dashboard API",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Add CORS middleware
cors_origins = settings.cors_origin_list or (["*"] if settings.debug else [])
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register error handlers
register_error_handlers(app)

# Add request logging middleware
if settings.enable_request_logging:
    app.middleware("http")(log_requests_middleware)

api_dependencies = [Depends(get_api_key)]
app.include_router(decision_router, prefix="/api", dependencies=api_dependencies)
app.include_router(host_router, prefix="/api", dependencies=api_dependencies)
app.include_router(user_router, prefix="/api", dependencies=api_dependencies)
app.include_router(sse_router)
app.include_router(metrics_router)

# Add metrics collection middleware
app.middleware("http")(metrics_middleware)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "CrowdSec Dashboard API",
        "status": "running",
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    """Health check: database connectivity, LAPI reachability and sync status"""
    db_connected = check_db_connection()

    if settings.lapi_configured:
        try:
            lapi = get_lapi_client().check_connection_health()
            lapi_status = {"status": lapi.status, "error": lapi.error}
        except LapiError as e:
            lapi_status = {"status": "error", "error": str(e)}
    else:
        lapi_status = {"status": "not_configured", "error": None}

    orchestrator = get_scheduler().orchestrator
    last_result = orchestrator.last_result

    logger.debug("Health check performed", extra={"db_connected": db_connected})

    return {
        "status": "healthy" if db_connected else "unhealthy",
        "service": settings.app_name,
        "database": "connected" if db_connected else "disconnected",
        "lapi": lapi_status,
        "sync": {
            "state": orchestrator.state.value,
            "first_fetch": orchestrator.first_fetch,
            "last_duration": last_result.duration if last_result else None,
        },
    }
