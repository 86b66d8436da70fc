"""Offline-aware documentation cache and mutation queue for HideSync."""

from .client import DocumentationApiClient
from .config import DocSyncConfig, InvalidConfig
from .connectivity import ConnectivityProbe, ConnectivitySignal
from .errors import (
    ConflictError,
    DocSyncError,
    NetworkError,
    NotFoundError,
    ServerError,
    StorageError,
    ValidationError,
)
from .filters import ResourceFilters, paginate
from .lifecycle import MutationSettledError, MutationState, OptimisticMutation
from .manager import DocSyncManager
from .models import OperationKind, PageMeta, PendingOperation, ResourcePage, SyncReport
from .repository import RemoteServiceClient, ResourceRepository
from .store import DocSyncStore, LocalMirrorStore, PendingOperationQueue

__all__ = [
    "ConflictError",
    "ConnectivityProbe",
    "ConnectivitySignal",
    "DocSyncConfig",
    "DocSyncError",
    "DocSyncManager",
    "DocSyncStore",
    "DocumentationApiClient",
    "InvalidConfig",
    "LocalMirrorStore",
    "MutationSettledError",
    "MutationState",
    "NetworkError",
    "NotFoundError",
    "OperationKind",
    "OptimisticMutation",
    "PageMeta",
    "PendingOperation",
    "PendingOperationQueue",
    "RemoteServiceClient",
    "ResourceFilters",
    "ResourcePage",
    "ResourceRepository",
    "ServerError",
    "StorageError",
    "SyncReport",
    "ValidationError",
    "paginate",
]
