from pydantic import BaseModel, ConfigDict, conint, constr
from datetime import datetime
from typing import Literal, Optional


class TargetCreate(BaseModel):
    # Emptiness is checked by the registry so the API and the service reject the same inputs
    url: constr(max_length=2048)  # type: ignore


class TargetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    url: str
    status: Literal["idle", "success", "warning", "error"]
    last_probe_at: Optional[datetime]
    last_latency_ms: Optional[int]
    consecutive_errors: int
    last_error: Optional[str]
    last_http_status: Optional[int]


class ConfigUpdate(BaseModel):
    interval_minutes: conint(ge=1)  # type: ignore


class ConfigResponse(BaseModel):
    interval_minutes: int
    running: bool


class StateResponse(BaseModel):
    targets: list[TargetResponse]
    interval_minutes: int
    running: bool


class ActivityLogEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    timestamp: datetime
    message: str
    severity: Literal["success", "warning", "error", "info"]


class ProbeResponse(BaseModel):
    target: TargetResponse
    classification: Literal["success", "warning", "error"]
    latency_ms: Optional[int]
    http_status: Optional[int]
    detail: Optional[str]
    via_fallback: bool
