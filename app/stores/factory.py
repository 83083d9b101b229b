from typing import MutableMapping, Optional

from app.core.settings import Settings, StorageBackend
from app.stores.base import AssignmentStore
from app.stores.client import ClientAssignmentStore
from app.stores.ephemeral import EphemeralAssignmentStore
from app.stores.remote import RemoteAssignmentStore


def build_assignment_store(
    settings: Settings, client_state: Optional[MutableMapping[str, str]] = None
) -> AssignmentStore:
    """Selects the assignment store backend configured by ``storage_backend``."""
    backend = settings.storage_backend
    if backend == StorageBackend.EPHEMERAL:
        return EphemeralAssignmentStore(default_ttl=settings.session_timeout)
    if backend == StorageBackend.CLIENT:
        return ClientAssignmentStore(
            client_state, prefix=settings.cookie_prefix, default_ttl=settings.session_timeout
        )
    if backend == StorageBackend.REMOTE:
        return RemoteAssignmentStore(
            settings.remote_store_url,
            timeout=settings.store_timeout,
            api_token=settings.remote_api_token,
            default_ttl=settings.session_timeout,
        )
    raise ValueError(f"Unknown storage backend: {backend}")
