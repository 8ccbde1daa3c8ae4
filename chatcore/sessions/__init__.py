"""Session persistence layer: models, quota-bounded store, quota monitor."""

from .models import (  # noqa: F401
    AttachmentRef,
    Message,
    QuotaLimits,
    Session,
    SessionUsage,
    StorageUsage,
)
from .persistence import InMemoryStorage, JsonFileStorage  # noqa: F401
from .store import SessionStore  # noqa: F401
from .quota import (  # noqa: F401
    EvictionReport,
    QuotaMonitor,
    QuotaPolicy,
    QuotaStatus,
)

__all__ = [
    "AttachmentRef",
    "Message",
    "QuotaLimits",
    "Session",
    "SessionUsage",
    "StorageUsage",
    "InMemoryStorage",
    "JsonFileStorage",
    "SessionStore",
    "EvictionReport",
    "QuotaMonitor",
    "QuotaPolicy",
    "QuotaStatus",
]
