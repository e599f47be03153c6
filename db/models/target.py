from sqlalchemy import Column, Integer, String, DateTime
from db.base import Base


class TargetRecord(Base):
    __tablename__ = "targets"
    id = Column(String, primary_key=True)
    position = Column(Integer, nullable=False, index=True)  # insertion order
    url = Column(String, nullable=False)
    status = Column(String, nullable=False, default="idle")
    last_probe_at = Column(DateTime(timezone=True), nullable=True)
    last_latency_ms = Column(Integer, nullable=True)
    consecutive_errors = Column(Integer, nullable=False, default=0)
    last_error = Column(String, nullable=True)
    last_http_status = Column(Integer, nullable=True)
