"""Error taxonomy for the content-tree editor."""

from typing import Any

NETWORK_ERROR_MESSAGE = "Network Error - Check Internet Connection"
SERVER_ERROR_MESSAGE = "Server Error - Please Try Again Later"


class PanelError(Exception):
    """Base class for every error the panel core raises."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class EntityNotFoundError(PanelError):
    """An operation referenced an id that is not in the forest."""

    def __init__(self, entity_id: str | None, message: str | None = None):
        self.entity_id = entity_id
        super().__init__(
            message or f"Entity {entity_id} not found",
            {"entity_id": entity_id},
        )


class InvalidHierarchyError(PanelError):
    """A child type is not allowed beneath the given parent type."""

    def __init__(self, parent_type: str | None, child_type: str):
        self.parent_type = parent_type
        self.child_type = child_type
        where = f"a {parent_type}" if parent_type else "the root level"
        super().__init__(
            f"Cannot add a {child_type} under {where}",
            {"parent_type": parent_type, "child_type": child_type},
        )


class EntityValidationError(PanelError):
    """Locally detected invalid input (blank names, bad orderings)."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message, {"field": field} if field else None)


class BusyError(PanelError):
    """A mutation was requested while another one is still in flight."""

    def __init__(self, operation: str, in_flight: str | None = None):
        self.operation = operation
        self.in_flight = in_flight
        super().__init__(
            "Another change is still being saved - please wait",
            {"operation": operation, "in_flight": in_flight},
        )


class RemoteStoreError(PanelError):
    """The backend rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message, {"status_code": status_code} if status_code else None)


class NetworkError(RemoteStoreError):
    """Transport-level failure talking to the backend."""

    def __init__(self, message: str = NETWORK_ERROR_MESSAGE):
        super().__init__(message)


class RemoteTimeoutError(RemoteStoreError):
    """The backend did not answer in time."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Request timed out during {operation}")


class AuthenticationError(RemoteStoreError):
    """The backend refused the request as unauthorized."""

    def __init__(self, message: str = "Unauthorized - please sign in again"):
        super().__init__(message, status_code=401)
