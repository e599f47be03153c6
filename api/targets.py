from fastapi import APIRouter, Depends, HTTPException, status
from api.dependencies import get_monitor_service
from api.models import TargetCreate, TargetResponse, ProbeResponse
from api.services.exceptions import TargetNotFound, ValidationError
from api.services.monitor_service import MonitorService

router = APIRouter()


@router.get("/targets", response_model=list[TargetResponse])
def list_targets(monitor_service: MonitorService = Depends(get_monitor_service)):
    return monitor_service.list_targets()


@router.post("/targets", response_model=TargetResponse, status_code=status.HTTP_201_CREATED)
def create_target(
    target: TargetCreate,
    monitor_service: MonitorService = Depends(get_monitor_service),
):
    try:
        return monitor_service.add_target(target.url)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


@router.delete("/targets/{target_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_target(
    target_id: str,
    monitor_service: MonitorService = Depends(get_monitor_service),
):
    try:
        monitor_service.remove_target(target_id)
    except TargetNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/targets/{target_id}/probe", response_model=ProbeResponse)
async def probe_target(
    target_id: str,
    monitor_service: MonitorService = Depends(get_monitor_service),
):
    try:
        target, result = await monitor_service.probe_now(target_id)
    except TargetNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return {
        "target": target,
        "classification": result.classification.value,
        "latency_ms": result.latency_ms,
        "http_status": result.http_status,
        "detail": result.detail,
        "via_fallback": result.via_fallback,
    }
