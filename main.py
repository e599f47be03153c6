from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.concurrency import asynccontextmanager
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from api import router as api_router
from api.health import router as health_router
from api.dependencies import build_monitor_service
from api.limiter import limiter
from api.services.monitor_service import MonitorService
import logging
import os


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    filename=os.getenv("LOG_FILE", "log.txt"),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def init_monitor_service() -> MonitorService:
    """Build the monitor service and restore the persisted state"""
    monitor_service = build_monitor_service()
    monitor_service.load_state()
    return monitor_service


def start_monitoring(monitor_service: MonitorService) -> bool:
    """Resume monitoring unless SKIP_SCHEDULER is set"""
    if os.getenv("SKIP_SCHEDULER", "false").lower() == "true":
        logger.info("SKIP_SCHEDULER set, not resuming monitoring")
        return False
    return monitor_service.resume()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup code
    monitor_service = init_monitor_service()
    app.state.monitor_service = monitor_service
    start_monitoring(monitor_service)
    yield
    # Shutdown code; cancels probes still in flight
    monitor_service.shutdown()


app = FastAPI(title="keepawake", lifespan=lifespan)

# Rate limiting setup
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS Configuration - Allow same-origin by default, customize for production
allowed_origins = os.getenv("CORS_ORIGINS", "*").split(",")
if allowed_origins == ["*"]:
    logger.warning(
        "CORS is set to allow all origins (*). "
        "Set CORS_ORIGINS environment variable to restrict origins in production."
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
    max_age=600,
)


# Security headers middleware
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


app.include_router(health_router)
app.include_router(api_router, prefix="/api")
