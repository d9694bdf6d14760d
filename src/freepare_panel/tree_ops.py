"""Pure recursive operations over the content forest.

Every function takes a forest (a tuple of root ``Entity`` values) and either
answers a query or returns a *new* forest. Entities are frozen, so untouched
subtrees are shared between the old and the new forest while every node on
the path to a change is rebuilt (copy-on-write). Callers holding an older
snapshot never observe a change.

Failures raise instead of returning partially modified trees:

- ``EntityNotFoundError`` when an id (or parent id) is not in the forest
- ``InvalidHierarchyError`` when a child type is not allowed under its parent
- ``EntityValidationError`` for blank names and bad sibling orderings
"""

from collections.abc import Callable, Iterable, Iterator, Sequence
from typing import Any, NamedTuple

from .models import (
    Entity,
    EntityNotFoundError,
    EntityValidationError,
    Forest,
    InvalidHierarchyError,
    can_contain,
)

# Fields a server-side update may refresh on an existing node.
_IMMUTABLE_FIELDS = frozenset({"id", "type", "children", "position"})


class RemovedNode(NamedTuple):
    """Result of :func:`remove_node`."""

    forest: Forest
    node: Entity
    parent_id: str | None
    original_position: int


def walk(forest: Iterable[Entity], parent_id: str | None = None) -> Iterator[tuple[Entity, str | None]]:
    """Depth-first pre-order walk yielding ``(node, parent_id)`` pairs."""
    for node in forest:
        yield node, parent_id
        if node.children:
            yield from walk(node.children, node.id)


def count_nodes(forest: Iterable[Entity]) -> int:
    return sum(1 for _ in walk(forest))


def _search(nodes: Sequence[Entity], entity_id: str, trail: list[str]) -> list[str] | None:
    for node in nodes:
        if node.id == entity_id:
            return trail + [node.id]
        if node.children:
            found = _search(node.children, entity_id, trail + [node.id])
            if found is not None:
                return found
    return None


def find_path(forest: Forest, entity_id: str) -> list[str]:
    """Return the ids from the root down to ``entity_id`` (inclusive)."""
    path = _search(forest, entity_id, [])
    if path is None:
        raise EntityNotFoundError(entity_id)
    return path


def find_node(forest: Forest, entity_id: str) -> Entity:
    nodes: Sequence[Entity] = forest
    node: Entity | None = None
    for step in find_path(forest, entity_id):
        node = next(n for n in nodes if n.id == step)
        nodes = node.children
    assert node is not None
    return node


def find_parent_id(forest: Forest, entity_id: str) -> str | None:
    """Parent id of ``entity_id``, or None for a root-level node."""
    path = find_path(forest, entity_id)
    return path[-2] if len(path) > 1 else None


def contains(forest: Forest, entity_id: str) -> bool:
    return _search(forest, entity_id, []) is not None


def siblings(forest: Forest, parent_id: str | None) -> Forest:
    """The sibling group under ``parent_id`` (the roots when None)."""
    if parent_id is None:
        return forest
    return find_node(forest, parent_id).children


def _renumber(nodes: Iterable[Entity]) -> Forest:
    """Assign dense 0-based positions in list order, reusing unchanged nodes."""
    return tuple(
        node if node.position == index else node.model_copy(update={"position": index})
        for index, node in enumerate(nodes)
    )


def _replace(nodes: Forest, entity_id: str, change: Callable[[Entity], Entity]) -> tuple[Forest, bool]:
    """Rebuild ``nodes`` with ``change`` applied to the node ``entity_id``."""
    for index, node in enumerate(nodes):
        if node.id == entity_id:
            return nodes[:index] + (change(node),) + nodes[index + 1:], True
        if node.children:
            children, found = _replace(node.children, entity_id, change)
            if found:
                rebuilt = node.model_copy(update={"children": children})
                return nodes[:index] + (rebuilt,) + nodes[index + 1:], True
    return nodes, False


def _update_group(forest: Forest, parent_id: str | None, change: Callable[[Forest], Forest]) -> Forest:
    """Replace the sibling group under ``parent_id`` with ``change(group)``."""
    if parent_id is None:
        return change(forest)
    updated, found = _replace(
        forest, parent_id, lambda parent: parent.model_copy(update={"children": change(parent.children)})
    )
    if not found:
        raise EntityNotFoundError(parent_id, f"Parent {parent_id} not found")
    return updated


def _parent_type(forest: Forest, parent_id: str | None):
    if parent_id is None:
        return None
    try:
        return find_node(forest, parent_id).type
    except EntityNotFoundError as err:
        raise EntityNotFoundError(parent_id, f"Parent {parent_id} not found") from err


def insert_child(forest: Forest, parent_id: str | None, node: Entity) -> Forest:
    """Append ``node`` to the children of ``parent_id`` (root when None).

    The new node takes ``position = len(siblings)``.
    """
    parent_type = _parent_type(forest, parent_id)
    if not can_contain(parent_type, node.type):
        raise InvalidHierarchyError(parent_type.value if parent_type else None, node.type.value)

    def append(group: Forest) -> Forest:
        return group + (node.model_copy(update={"position": len(group)}),)

    return _update_group(forest, parent_id, append)


def remove_node(forest: Forest, entity_id: str) -> RemovedNode:
    """Excise ``entity_id`` and its subtree.

    Remaining siblings are renumbered densely. The returned record carries
    what :func:`reinsert_node` needs to put the node back.
    """
    parent_id = find_parent_id(forest, entity_id)
    group = siblings(forest, parent_id)
    index = next(i for i, n in enumerate(group) if n.id == entity_id)
    removed = group[index]
    updated = _update_group(forest, parent_id, lambda g: _renumber(g[:index] + g[index + 1:]))
    return RemovedNode(updated, removed, parent_id, index)


def rename_node(forest: Forest, entity_id: str, new_name: str) -> Forest:
    """Change the name of ``entity_id``; id, position and children are kept."""
    if not new_name or not new_name.strip():
        raise EntityValidationError("Name cannot be empty", field="name")
    return update_node(forest, entity_id, name=new_name)


def update_node(forest: Forest, entity_id: str, **fields: Any) -> Forest:
    """Merge ``fields`` into ``entity_id``.

    Structural fields (id, type, children, position) are ignored so a server
    response can be merged without disturbing the tree.
    """
    changes = {key: value for key, value in fields.items() if key not in _IMMUTABLE_FIELDS}
    updated, found = _replace(forest, entity_id, lambda node: node.model_copy(update=changes))
    if not found:
        raise EntityNotFoundError(entity_id)
    return updated


def reorder_siblings(forest: Forest, parent_id: str | None, ordered_ids: Sequence[str]) -> Forest:
    """Put the sibling group of ``parent_id`` in ``ordered_ids`` order.

    ``ordered_ids`` must be a permutation of the current sibling ids.
    Positions are reassigned 0..n-1.
    """
    group = siblings(forest, parent_id)
    by_id = {node.id: node for node in group}
    if len(ordered_ids) != len(group) or set(ordered_ids) != set(by_id):
        raise EntityValidationError(
            "New order must list every sibling exactly once", field="ordered_ids"
        )
    return _update_group(forest, parent_id, lambda _: _renumber(by_id[i] for i in ordered_ids))


def move_sibling(forest: Forest, active_id: str, over_id: str) -> Forest:
    """Drag-end helper: move ``active_id`` to the slot currently held by ``over_id``.

    Both ids must share a parent. Nodes between the two slots shift by one.
    """
    parent_id = find_parent_id(forest, active_id)
    if find_parent_id(forest, over_id) != parent_id:
        raise EntityValidationError("Items can only be reordered within the same parent")
    ids = [node.id for node in siblings(forest, parent_id)]
    target = ids.index(over_id)
    ids.remove(active_id)
    ids.insert(target, active_id)
    return reorder_siblings(forest, parent_id, ids)


def reinsert_node(forest: Forest, parent_id: str | None, node: Entity, at_position: int) -> Forest:
    """Insert ``node`` back at ``at_position`` under ``parent_id``.

    Later siblings shift up by one. A position past the end appends. Fails
    with ``EntityNotFoundError`` when the parent has since disappeared.
    """
    parent_type = _parent_type(forest, parent_id)
    if not can_contain(parent_type, node.type):
        raise InvalidHierarchyError(parent_type.value if parent_type else None, node.type.value)

    def insert(group: Forest) -> Forest:
        index = max(0, min(at_position, len(group)))
        return _renumber(group[:index] + (node,) + group[index:])

    return _update_group(forest, parent_id, insert)


def _sorted_by_position(nodes: Iterable[Entity]) -> Forest:
    return tuple(
        sorted(
            (
                node.model_copy(update={"children": _sorted_by_position(node.children)})
                if node.children
                else node
                for node in nodes
            ),
            key=lambda n: n.position,
        )
    )


def forest_from_payload(payload: Any) -> Forest:
    """Validate the nested list returned by ``GET /entities``.

    Every sibling group is ordered by its ``position`` field.
    """
    if isinstance(payload, dict):
        payload = payload.get("entities") or payload.get("data") or []
    return _sorted_by_position(Entity.model_validate(item) for item in payload or [])
