"""HTTP client for the Freepare entities backend."""

from .api_client import PanelClient, RestoredSubtree
from .api_client_core import PanelClientCore, log_event

__all__ = ["PanelClient", "PanelClientCore", "RestoredSubtree", "log_event"]
