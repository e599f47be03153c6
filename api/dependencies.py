# api/dependencies.py
from fastapi import Request
from db.engine import SessionLocal
from db.repositories.state_repository import StateRepository
from api.services.monitor_service import MonitorService
from api.services.probe_service import ProbeExecutor


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def build_monitor_service(session_factory=SessionLocal) -> MonitorService:
    return MonitorService(StateRepository(session_factory), ProbeExecutor())


def get_monitor_service(request: Request) -> MonitorService:
    # One long-lived service per app: it owns the scheduler and the in-memory registry
    return request.app.state.monitor_service
