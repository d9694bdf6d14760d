"""Selection and expansion state of the tree view."""

from dataclasses import dataclass, field

from .models import EntityNotFoundError, EntityType, Forest, allowed_child_types
from .tree_ops import contains, find_node, walk


@dataclass
class SelectionState:
    """Which node the next add/edit/delete targets, and which nodes are open."""

    selected_id: str | None = None
    expanded_ids: set[str] = field(default_factory=set)

    def select(self, entity_id: str | None, forest: Forest | None = None) -> str | None:
        """Select ``entity_id``; selecting the current selection clears it.

        When ``forest`` is given, an id that is not part of it clears the
        selection and raises ``EntityNotFoundError``.
        """
        if entity_id is not None and forest is not None and not contains(forest, entity_id):
            self.selected_id = None
            raise EntityNotFoundError(entity_id)
        self.selected_id = None if entity_id == self.selected_id else entity_id
        return self.selected_id

    def clear(self) -> None:
        self.selected_id = None

    def allowed_child_types(self, forest: Forest) -> tuple[EntityType, ...]:
        """Types that may be added under the selection (exams when nothing is selected)."""
        if self.selected_id is None:
            return allowed_child_types(None)
        try:
            return allowed_child_types(find_node(forest, self.selected_id).type)
        except EntityNotFoundError:
            return ()

    def toggle_expanded(self, entity_id: str) -> bool:
        if entity_id in self.expanded_ids:
            self.expanded_ids.discard(entity_id)
            return False
        self.expanded_ids.add(entity_id)
        return True

    def expand(self, entity_id: str) -> None:
        self.expanded_ids.add(entity_id)

    def collapse(self, entity_id: str) -> None:
        self.expanded_ids.discard(entity_id)

    def is_expanded(self, entity_id: str) -> bool:
        return entity_id in self.expanded_ids

    def prune(self, forest: Forest) -> None:
        """Forget ids that are no longer part of ``forest``."""
        live = {node.id for node, _ in walk(forest)}
        self.expanded_ids &= live
        if self.selected_id is not None and not contains(forest, self.selected_id):
            self.selected_id = None
