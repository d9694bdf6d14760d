"""Freepare panel - content-tree editor core for the exam-preparation admin panel."""

from .client import PanelClient
from .coordinator import MutationResult, MutationState, Outcome, PanelCoordinator, PendingDelete
from .models import Entity, EntityType, Notification, Severity, can_contain
from .selection import SelectionState

__version__ = "0.1.0"

__all__ = [
    "Entity",
    "EntityType",
    "MutationResult",
    "MutationState",
    "Notification",
    "Outcome",
    "PanelClient",
    "PanelCoordinator",
    "PendingDelete",
    "SelectionState",
    "Severity",
    "can_contain",
]
