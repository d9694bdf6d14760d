"""Data models for the Freepare panel core."""

from .entity import CHILD_TYPES, Entity, EntityType, Forest, allowed_child_types, can_contain
from .errors import (
    NETWORK_ERROR_MESSAGE,
    SERVER_ERROR_MESSAGE,
    AuthenticationError,
    BusyError,
    EntityNotFoundError,
    EntityValidationError,
    InvalidHierarchyError,
    NetworkError,
    PanelError,
    RemoteStoreError,
    RemoteTimeoutError,
)
from .requests import (
    APIConfiguration,
    EntityCreateRequest,
    EntityUpdateRequest,
    Notification,
    PaperTestNameRequest,
    ReorderRequest,
    Severity,
)

__all__ = [
    "APIConfiguration",
    "AuthenticationError",
    "BusyError",
    "CHILD_TYPES",
    "Entity",
    "EntityCreateRequest",
    "EntityNotFoundError",
    "EntityType",
    "EntityUpdateRequest",
    "EntityValidationError",
    "Forest",
    "InvalidHierarchyError",
    "NETWORK_ERROR_MESSAGE",
    "NetworkError",
    "Notification",
    "PanelError",
    "PaperTestNameRequest",
    "RemoteStoreError",
    "RemoteTimeoutError",
    "ReorderRequest",
    "SERVER_ERROR_MESSAGE",
    "Severity",
    "allowed_child_types",
    "can_contain",
]
