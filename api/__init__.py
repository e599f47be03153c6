from fastapi import APIRouter
from .targets import router as targets_router
from .monitor import router as monitor_router

router = APIRouter()
router.include_router(targets_router)
router.include_router(monitor_router)
