"""Background CRM sync: per-submission orchestration and the worker pool."""

from src.contact_hub.sync.dispatcher import SyncDispatcher
from src.contact_hub.sync.engine import ContactSyncEngine, build_contact_payload

__all__ = [
    "ContactSyncEngine",
    "SyncDispatcher",
    "build_contact_payload",
]
