from fastapi import APIRouter, Depends, HTTPException, Request, status
from api.dependencies import get_monitor_service
from api.limiter import limiter
from api.models import ActivityLogEntryResponse, ConfigResponse, ConfigUpdate, StateResponse
from api.services.exceptions import ValidationError
from api.services.monitor_service import MonitorService

router = APIRouter()


@router.get("/state", response_model=StateResponse)
def get_state(monitor_service: MonitorService = Depends(get_monitor_service)):
    return monitor_service.snapshot()


@router.get("/config", response_model=ConfigResponse)
def get_config(monitor_service: MonitorService = Depends(get_monitor_service)):
    return monitor_service.get_config()


# The scheduler lives on the event loop, so anything touching it is async
@router.put("/config", response_model=ConfigResponse)
async def update_config(
    config: ConfigUpdate,
    monitor_service: MonitorService = Depends(get_monitor_service),
):
    try:
        return monitor_service.set_interval(config.interval_minutes)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


@router.post("/monitor/start", response_model=ConfigResponse)
async def start_monitoring(monitor_service: MonitorService = Depends(get_monitor_service)):
    monitor_service.start_monitoring()
    return monitor_service.get_config()


@router.post("/monitor/stop", response_model=ConfigResponse)
async def stop_monitoring(monitor_service: MonitorService = Depends(get_monitor_service)):
    monitor_service.stop_monitoring()
    return monitor_service.get_config()


@router.get("/logs", response_model=list[ActivityLogEntryResponse])
def list_logs(monitor_service: MonitorService = Depends(get_monitor_service)):
    return monitor_service.activity()


@router.delete("/logs", status_code=status.HTTP_204_NO_CONTENT)
def clear_logs(monitor_service: MonitorService = Depends(get_monitor_service)):
    monitor_service.clear_activity()


@router.api_route("/trigger", methods=["GET", "POST"])
@limiter.limit("30/minute")
async def trigger_round(
    request: Request,
    monitor_service: MonitorService = Depends(get_monitor_service),
):
    """
    Run one probing round from the persisted state.
    GET (for cron services) and POST (manual) behave identically.
    """
    return await monitor_service.trigger_round()
