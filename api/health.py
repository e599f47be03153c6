from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from sqlalchemy import text
from api.dependencies import get_db
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(request: Request, db: Session = Depends(get_db)):
    """
    Health check endpoint for monitoring and load balancers.
    Returns 200 OK if the application is healthy.
    """
    try:
        # Test database connectivity
        db.execute(text("SELECT 1"))

        monitor_service = getattr(request.app.state, "monitor_service", None)
        scheduler_status = "running" if monitor_service and monitor_service.scheduler.running else "stopped"

        return {
            "status": "healthy",
            "database": "connected",
            "scheduler": scheduler_status,
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e)
        }
