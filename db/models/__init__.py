from .target import TargetRecord
from .settings import Settings

__all__ = ["TargetRecord", "Settings"]
