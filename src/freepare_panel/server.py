"""Freepare panel MCP server implementation using FastMCP.

Each tool is bound to one operation of the mutation coordinator, the same
operations the admin panel binds to its buttons, drag handles and dialogs.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastmcp import FastMCP

from .client import PanelClient
from .config import ServerConfig, setup_logging
from .coordinator import PanelCoordinator
from .models import EntityNotFoundError, EntityType, Forest, Notification
from .tree_ops import walk

logger = logging.getLogger(__name__)

# Global instances, created by the lifespan
_client: PanelClient | None = None
_coordinator: PanelCoordinator | None = None


def get_coordinator() -> PanelCoordinator:
    """Get the global coordinator instance."""
    if _coordinator is None:
        raise RuntimeError("Panel coordinator not initialized. Server not started properly.")
    return _coordinator


def _log_notification(notification: Notification) -> None:
    logger.info(f"[{notification.severity.value}] {notification.message}")


@asynccontextmanager
async def lifespan(_app: FastMCP):  # type: ignore[no-untyped-def]
    """Manage server lifecycle."""
    global _client, _coordinator

    logger.info("Starting Freepare panel server")

    config = ServerConfig()  # type: ignore[call-arg]
    api_config = config.get_api_config()

    _client = PanelClient(api_config)
    _coordinator = PanelCoordinator(
        _client,
        undo_window=config.undo_window_seconds,
        tick_interval=config.undo_tick_seconds,
    )
    _coordinator.subscribe(on_notification=_log_notification)
    logger.info(f"Panel client initialized with base URL: {api_config.base_url}")

    await _coordinator.load()

    yield

    logger.info("Shutting down Freepare panel server")
    await _coordinator.close()
    await _client.close()
    _coordinator = None
    _client = None


mcp = FastMCP(
    "Freepare Panel",
    instructions=(
        "Edit the exam → subject → topic → paper content tree. Select a node, "
        "then add, rename, delete (undoable for a few seconds) or reorder."
    ),
    lifespan=lifespan,
)


def _outline(forest: Forest, coordinator: PanelCoordinator) -> str:
    """Indented text view of the tree, marking the selection and collapsed nodes."""
    depth_of: dict[str | None, int] = {None: -1}
    lines: list[str] = []
    selection = coordinator.selection
    for node, parent_id in walk(forest):
        depth = depth_of[parent_id] + 1
        depth_of[node.id] = depth
        marker = "*" if node.id == selection.selected_id else "-"
        fold = ""
        if node.children:
            fold = " [+]" if not selection.is_expanded(node.id) else " [-]"
        lines.append(f"{'  ' * depth}{marker} {node.name} ({node.type.value}, {node.id}){fold}")
    return "\n".join(lines)


def _status(coordinator: PanelCoordinator) -> dict[str, Any]:
    pending = coordinator.pending_delete
    return {
        "busy": coordinator.busy,
        "in_flight": coordinator.in_flight,
        "selected_id": coordinator.selection.selected_id,
        "expanded_ids": sorted(coordinator.selection.expanded_ids),
        "allowed_child_types": [t.value for t in coordinator.selection.allowed_child_types(coordinator.forest)],
        "undo": None
        if pending is None
        else {
            "entity": pending.entity.name,
            "seconds_left": round(pending.seconds_left(), 1),
        },
        "notifications": [n.as_dict() for n in list(coordinator.notifications)[-5:]],
    }


@mcp.tool(name="panel_load", description="Reload the content tree from the backend")
async def panel_load() -> dict:
    coordinator = get_coordinator()
    result = await coordinator.load()
    return {**result.as_dict(), "outline": _outline(coordinator.forest, coordinator)}


@mcp.tool(name="panel_tree", description="Show the current content tree and panel state")
async def panel_tree(include_payload: bool = False) -> dict:
    """Return the tree as an outline (and optionally as backend-shaped JSON).

    Args:
        include_payload: Also return the nested entity list with positions
    """
    coordinator = get_coordinator()
    view: dict[str, Any] = {"outline": _outline(coordinator.forest, coordinator), **_status(coordinator)}
    if include_payload:
        view["entities"] = [entity.to_payload() for entity in coordinator.forest]
    return view


@mcp.tool(name="panel_status", description="Busy flag, selection, undo countdown and recent notifications")
async def panel_status() -> dict:
    return _status(get_coordinator())


@mcp.tool(name="panel_select", description="Select (or unselect) the node that add/rename/delete target")
async def panel_select(entity_id: str | None = None) -> dict:
    coordinator = get_coordinator()
    if entity_id is None:
        coordinator.selection.clear()
    else:
        try:
            coordinator.selection.select(entity_id, coordinator.forest)
        except EntityNotFoundError as err:
            return {**_status(coordinator), "error": err.message}
    return _status(coordinator)


@mcp.tool(name="panel_toggle_expand", description="Expand or collapse a node in the outline")
async def panel_toggle_expand(entity_id: str) -> dict:
    coordinator = get_coordinator()
    expanded = coordinator.selection.toggle_expanded(entity_id)
    return {"entity_id": entity_id, "expanded": expanded}


@mcp.tool(name="panel_add_entity", description="Add an exam, subject, topic or paper")
async def panel_add_entity(
    name: str,
    entity_type: EntityType,
    parent_id: str | None = None,
    description: str | None = None,
    test_name: str | None = None,
    video_link: str | None = None,
) -> dict:
    """Create an entity.

    Args:
        name: Display name
        entity_type: exam, subject, topic or paper
        parent_id: Parent node (defaults to the current selection; omit both for an exam)
        description: Topic description (topics only)
        test_name: Test name (papers only)
        video_link: Video link (papers only)
    """
    coordinator = get_coordinator()
    target = parent_id if parent_id is not None else coordinator.selection.selected_id
    result = await coordinator.add(
        name,
        entity_type,
        parent_id=target,
        description=description,
        test_name=test_name,
        video_link=video_link,
    )
    return result.as_dict()


@mcp.tool(name="panel_rename_entity", description="Rename an entity")
async def panel_rename_entity(entity_id: str, name: str) -> dict:
    result = await get_coordinator().rename(entity_id, name)
    return result.as_dict()


@mcp.tool(name="panel_rename_test_name", description="Change the test name of a paper")
async def panel_rename_test_name(entity_id: str, test_name: str) -> dict:
    result = await get_coordinator().rename_test_name(entity_id, test_name)
    return result.as_dict()


@mcp.tool(
    name="panel_delete_entity",
    description="Delete an entity and its subtree (undo stays available for a few seconds)",
)
async def panel_delete_entity(entity_id: str | None = None) -> dict:
    coordinator = get_coordinator()
    result = await coordinator.delete(entity_id)
    view = result.as_dict()
    pending = coordinator.pending_delete
    if pending is not None:
        view["undo_seconds_left"] = round(pending.seconds_left(), 1)
    return view


@mcp.tool(name="panel_undo_delete", description="Restore the most recently deleted entity")
async def panel_undo_delete() -> dict:
    result = await get_coordinator().undo_delete()
    return result.as_dict()


@mcp.tool(name="panel_reorder", description="Set the order of a sibling group")
async def panel_reorder(ordered_ids: list[str], parent_id: str | None = None) -> dict:
    """Reorder siblings.

    Args:
        ordered_ids: Every child id of the parent, in the new order
        parent_id: Parent whose children are reordered (omit for exams)
    """
    result = await get_coordinator().reorder(parent_id, ordered_ids)
    return result.as_dict()


@mcp.tool(name="panel_move", description="Drag an entity onto the slot of a sibling")
async def panel_move(active_id: str, over_id: str) -> dict:
    result = await get_coordinator().move(active_id, over_id)
    return result.as_dict()


def main() -> None:
    """Run the server over stdio."""
    setup_logging(ServerConfig().log_level)  # type: ignore[call-arg]
    mcp.run()


if __name__ == "__main__":
    main()
