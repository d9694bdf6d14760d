"""Freepare backend client - tree-level operations built on the core calls."""

from typing import NamedTuple

from pydantic import ValidationError

from ..models import Entity, EntityCreateRequest, Forest, PanelError, RemoteStoreError
from ..tree_ops import forest_from_payload
from .api_client_core import PanelClientCore, _ClientLogger


class RestoredSubtree(NamedTuple):
    """Outcome of :meth:`PanelClient.recreate_subtree`."""

    entity: Entity
    created: int
    errors: list[str]


class PanelClient(PanelClientCore):
    """Backend client used by the mutation coordinator."""

    async def load_forest(self, max_retries: int | None = None) -> Forest:
        """Fetch and validate the full forest, ordered by position."""
        payload = await self.list_entities(max_retries=max_retries)
        try:
            return forest_from_payload(payload)
        except ValidationError as err:
            raise RemoteStoreError("Invalid response format from server") from err

    async def recreate_subtree(self, entity: Entity, parent_id: str | None) -> RestoredSubtree:
        """Re-create ``entity`` and its descendants top-down under ``parent_id``.

        The backend has no endpoint that accepts a subtree, so each node is
        created individually and receives a new id. A failure creating the
        top node is raised; failures further down are collected and the
        affected branch is skipped.
        """
        logger = _ClientLogger("RESTORE")
        stats = {"created": 0, "errors": []}

        async def create_tree(source: Entity, target_parent: str | None) -> Entity:
            created = await self.create_entity(EntityCreateRequest.from_entity(source, target_parent))
            stats["created"] += 1

            children: list[Entity] = []
            for child in source.children:
                try:
                    restored = await create_tree(child, created.id)
                except PanelError as err:
                    error_msg = f"Failed to restore '{child.name}': {err.message}"
                    logger.error(error_msg)
                    stats["errors"].append(error_msg)
                    continue
                children.append(restored.model_copy(update={"position": len(children)}))

            return created.model_copy(update={"children": tuple(children)})

        root = await create_tree(entity, parent_id)
        logger.info(f"Restored '{entity.name}' as {root.id}: {stats['created']} entities created")
        return RestoredSubtree(root, stats["created"], stats["errors"])
