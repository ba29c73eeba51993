from .log import AuditLog
from .models import ProcessEvent

__all__ = [
    "AuditLog",
    "ProcessEvent",
]
