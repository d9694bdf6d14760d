"""Mutation coordinator for the content tree.

The coordinator owns the in-memory forest and runs at most one mutation at
a time against the backend::

    IDLE -> SUBMITTING -> APPLIED | FAILED -> IDLE

A request that arrives while another one is SUBMITTING is rejected with
``BusyError``; nothing is queued.

Update policy differs per operation:

- add, rename, rename_test_name and delete are pessimistic: the forest only
  changes after the backend confirmed the change.
- reorder/move is optimistic: the new order is published immediately and the
  pre-drag snapshot is restored if persisting it fails.

A confirmed delete opens a grace window (5 s by default) during which
:meth:`PanelCoordinator.undo_delete` re-creates the removed entity, including
its descendants, under new ids. The window is an ``asyncio`` task that ticks
once per second and is cancelled on undo, on a newer delete and on close.

Every operation returns a :class:`MutationResult` and emits exactly one
notification; errors from the taxonomy in ``models.errors`` never escape.
"""

import asyncio
import logging
import math
import time
from collections import deque
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from . import tree_ops
from .client import RestoredSubtree
from .models import (
    BusyError,
    Entity,
    EntityCreateRequest,
    EntityNotFoundError,
    EntityType,
    EntityUpdateRequest,
    EntityValidationError,
    Forest,
    InvalidHierarchyError,
    Notification,
    PanelError,
    PaperTestNameRequest,
    RemoteStoreError,
    Severity,
    can_contain,
)
from .selection import SelectionState

logger = logging.getLogger(__name__)

UNDO_WINDOW_SECONDS = 5.0
UNDO_TICK_SECONDS = 1.0


class RemoteStore(Protocol):
    """Backend calls the coordinator depends on (see ``client.PanelClient``)."""

    async def load_forest(self) -> Forest: ...

    async def create_entity(self, request: EntityCreateRequest) -> Entity: ...

    async def update_entity(self, entity_id: str, request: EntityUpdateRequest) -> Entity: ...

    async def delete_entity(self, entity_id: str) -> bool: ...

    async def reorder_entities(self, forest: Forest) -> None: ...

    async def rename_test_name(self, entity_id: str, request: PaperTestNameRequest) -> Entity: ...

    async def recreate_subtree(self, entity: Entity, parent_id: str | None) -> RestoredSubtree: ...


class MutationState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    APPLIED = "applied"
    FAILED = "failed"


class Outcome(str, Enum):
    APPLIED = "applied"
    FAILED = "failed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class MutationResult:
    """What happened to one requested mutation."""

    operation: str
    outcome: Outcome
    notification: Notification
    entity: Entity | None = None
    error: PanelError | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.APPLIED

    def as_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "operation": self.operation,
            "outcome": self.outcome.value,
            "success": self.ok,
            "notification": self.notification.as_dict(),
        }
        if self.entity is not None:
            result["entity"] = self.entity.to_payload()
        if self.error is not None:
            result["error"] = {"type": type(self.error).__name__, **self.error.details}
        return result


@dataclass(frozen=True)
class PendingDelete:
    """A confirmed delete that can still be undone until ``expiry``."""

    entity: Entity
    parent_id: str | None
    original_position: int
    expiry: float  # time.monotonic() deadline

    def seconds_left(self, now: float | None = None) -> float:
        return max(0.0, self.expiry - (time.monotonic() if now is None else now))


ForestListener = Callable[[Forest], None]
NotificationListener = Callable[[Notification], None]
CountdownListener = Callable[[int, PendingDelete], None]


class PanelCoordinator:
    """Owns the forest and serialises every change to it through the backend."""

    def __init__(
        self,
        store: RemoteStore,
        undo_window: float = UNDO_WINDOW_SECONDS,
        tick_interval: float = UNDO_TICK_SECONDS,
        history_size: int = 50,
    ):
        self.store = store
        self.undo_window = undo_window
        self.tick_interval = tick_interval
        self.selection = SelectionState()
        self.state = MutationState.IDLE
        self.last_state: MutationState | None = None
        self.notifications: deque[Notification] = deque(maxlen=history_size)

        self._forest: Forest = ()
        self._in_flight: str | None = None
        self._pending: PendingDelete | None = None
        self._undo_task: asyncio.Task | None = None

        self._forest_listeners: list[ForestListener] = []
        self._notification_listeners: list[NotificationListener] = []
        self._countdown_listeners: list[CountdownListener] = []

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def forest(self) -> Forest:
        """Current immutable snapshot of the tree."""
        return self._forest

    @property
    def busy(self) -> bool:
        return self.state is MutationState.SUBMITTING

    @property
    def in_flight(self) -> str | None:
        return self._in_flight

    @property
    def pending_delete(self) -> PendingDelete | None:
        if self._pending is not None and self._pending.seconds_left() <= 0:
            return None
        return self._pending

    @property
    def undo_available(self) -> bool:
        return self.pending_delete is not None

    def subscribe(
        self,
        on_forest: ForestListener | None = None,
        on_notification: NotificationListener | None = None,
        on_countdown: CountdownListener | None = None,
    ) -> Callable[[], None]:
        """Register listeners; returns a callable that unregisters them."""
        registered: list[tuple[list, Callable]] = []
        for listeners, callback in (
            (self._forest_listeners, on_forest),
            (self._notification_listeners, on_notification),
            (self._countdown_listeners, on_countdown),
        ):
            if callback is not None:
                listeners.append(callback)
                registered.append((listeners, callback))

        def unsubscribe() -> None:
            for listeners, callback in registered:
                if callback in listeners:
                    listeners.remove(callback)

        return unsubscribe

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def load(self) -> MutationResult:
        """Replace the forest with the backend's current tree."""

        async def action() -> MutationResult:
            try:
                forest = await self.store.load_forest()
            except RemoteStoreError:
                self._set_forest(())
                raise
            self._set_forest(forest)
            self.selection.prune(forest)
            count = tree_ops.count_nodes(forest)
            return self._result("load", Outcome.APPLIED, f"Loaded {count} entities", Severity.INFO)

        return await self._run("load", action)

    async def add(
        self,
        name: str,
        entity_type: EntityType | str,
        parent_id: str | None = None,
        description: str | None = None,
        test_name: str | None = None,
        video_link: str | None = None,
    ) -> MutationResult:
        """Create an entity under ``parent_id`` (root when None), pessimistically."""

        async def action() -> MutationResult:
            try:
                child_type = EntityType(entity_type)
            except ValueError as err:
                raise EntityValidationError(f"Unknown entity type '{entity_type}'", field="type") from err
            if not name or not name.strip():
                raise EntityValidationError("Name cannot be empty", field="name")
            parent_type = None
            if parent_id is not None:
                parent_type = tree_ops.find_node(self._forest, parent_id).type
            if not can_contain(parent_type, child_type):
                raise InvalidHierarchyError(parent_type.value if parent_type else None, child_type.value)

            request = EntityCreateRequest(
                name=name.strip(),
                type=child_type,
                parentId=parent_id,
                description=description,
                testName=test_name,
                videoLink=video_link,
            )
            created = await self.store.create_entity(request)
            self._set_forest(tree_ops.insert_child(self._forest, parent_id, created))
            if parent_id is not None:
                self.selection.expand(parent_id)
            return self._result(
                "add", Outcome.APPLIED, f'Entity "{name.strip()}" added successfully', entity=created
            )

        result = await self._run("add", action)
        if result.outcome is not Outcome.REJECTED:
            # the add dialog drops its target once the backend has answered
            self.selection.clear()
        return result

    async def rename(self, entity_id: str, new_name: str) -> MutationResult:
        """Rename ``entity_id`` once the backend accepted the new name."""

        async def action() -> MutationResult:
            if not new_name or not new_name.strip():
                raise EntityValidationError("Name cannot be empty", field="name")
            tree_ops.find_node(self._forest, entity_id)

            updated = await self.store.update_entity(entity_id, EntityUpdateRequest(name=new_name.strip()))
            forest = tree_ops.rename_node(self._forest, entity_id, updated.name or new_name.strip())
            forest = tree_ops.update_node(forest, entity_id, **updated.model_dump(exclude_unset=True))
            self._set_forest(forest)
            self.selection.clear()
            return self._result(
                "rename",
                Outcome.APPLIED,
                f'Entity "{new_name.strip()}" updated successfully',
                entity=tree_ops.find_node(forest, entity_id),
            )

        return await self._run("rename", action)

    async def rename_test_name(self, entity_id: str, test_name: str) -> MutationResult:
        """Change the test name of a paper."""

        async def action() -> MutationResult:
            if not test_name or not test_name.strip():
                raise EntityValidationError("Test name cannot be empty", field="testName")
            node = tree_ops.find_node(self._forest, entity_id)
            if node.type is not EntityType.PAPER:
                raise EntityValidationError("Only papers have a test name", field="testName")
            if node.testName == test_name:
                raise EntityValidationError("Test name is unchanged", field="testName")

            updated = await self.store.rename_test_name(entity_id, PaperTestNameRequest(testName=test_name))
            fields = updated.model_dump(exclude_unset=True)
            fields["testName"] = updated.testName or test_name
            forest = tree_ops.update_node(self._forest, entity_id, **fields)
            self._set_forest(forest)
            return self._result(
                "rename_test_name",
                Outcome.APPLIED,
                f'Test name updated successfully to "{test_name}"',
                entity=tree_ops.find_node(forest, entity_id),
            )

        return await self._run("rename_test_name", action)

    async def delete(self, entity_id: str | None = None) -> MutationResult:
        """Delete ``entity_id`` (the selection when None) and open the undo window."""
        target = entity_id if entity_id is not None else self.selection.selected_id

        async def action() -> MutationResult:
            if target is None:
                raise EntityValidationError("No entity selected or _id is missing", field="id")
            node = tree_ops.find_node(self._forest, target)

            await self.store.delete_entity(target)
            removed = tree_ops.remove_node(self._forest, target)
            self._set_forest(removed.forest)
            self.selection.clear()
            self.selection.prune(removed.forest)
            self._open_pending_delete(removed)
            return self._result(
                "delete", Outcome.APPLIED, f'"{node.name or "Entity"}" deleted successfully', entity=node
            )

        return await self._run("delete", action)

    async def undo_delete(self) -> MutationResult:
        """Re-create the most recently deleted entity while its window is open."""

        async def action() -> MutationResult:
            pending = self.pending_delete
            if pending is None:
                self._discard_pending_delete()
                raise EntityValidationError("Nothing to undo", field="undo")
            self._discard_pending_delete()

            if pending.parent_id is not None and not tree_ops.contains(self._forest, pending.parent_id):
                raise EntityNotFoundError(
                    pending.parent_id,
                    f'Cannot restore "{pending.entity.name}": its parent no longer exists',
                )

            restored = await self.store.recreate_subtree(pending.entity, pending.parent_id)
            forest = tree_ops.reinsert_node(
                self._forest, pending.parent_id, restored.entity, pending.original_position
            )
            self._set_forest(forest)

            problems = list(restored.errors)
            group = tree_ops.siblings(forest, pending.parent_id)
            if group[-1].id != restored.entity.id:
                # the backend appended the new entity; persist its old slot
                try:
                    await self.store.reorder_entities(forest)
                except RemoteStoreError as err:
                    logger.warning(f"Could not persist restored position: {err.message}")
                    problems.append(f"its position could not be saved ({err.message})")

            message = f'Undo delete successful for entity "{pending.entity.name}"'
            severity = Severity.SUCCESS
            if problems:
                message += f", but {'; '.join(problems)}"
                severity = Severity.WARNING
            return self._result(
                "undo_delete",
                Outcome.APPLIED,
                message,
                severity,
                entity=tree_ops.find_node(forest, restored.entity.id),
            )

        return await self._run("undo_delete", action)

    async def reorder(self, parent_id: str | None, ordered_ids: Sequence[str]) -> MutationResult:
        """Apply a new sibling order locally, then persist it (optimistic)."""
        return await self._run(
            "reorder",
            lambda: self._apply_reorder(
                "reorder", lambda forest: tree_ops.reorder_siblings(forest, parent_id, ordered_ids)
            ),
        )

    async def move(self, active_id: str, over_id: str) -> MutationResult:
        """Drag-end entry point: drop ``active_id`` onto the slot of ``over_id``."""
        if active_id == over_id:
            return self._emit(
                self._result("move", Outcome.REJECTED, "Item dropped in place", Severity.INFO)
            )
        return await self._run(
            "move",
            lambda: self._apply_reorder(
                "move", lambda forest: tree_ops.move_sibling(forest, active_id, over_id)
            ),
        )

    async def close(self) -> None:
        """Tear down: stop the undo countdown and drop the pending delete."""
        task = self._undo_task
        self._discard_pending_delete()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(self, operation: str, action: Callable[[], Awaitable[MutationResult]]) -> MutationResult:
        """Gate, execute and report a single mutation."""
        if self.state is MutationState.SUBMITTING:
            err = BusyError(operation, self._in_flight)
            logger.info(f"Rejected {operation}: {self._in_flight} still in flight")
            return self._emit(self._failure(operation, err, Outcome.REJECTED))

        self.state = MutationState.SUBMITTING
        self._in_flight = operation
        terminal = MutationState.FAILED
        try:
            result = await action()
            terminal = MutationState.APPLIED
        except RemoteStoreError as err:
            logger.warning(f"{operation} failed remotely: {err.message}")
            result = self._failure(operation, err, Outcome.FAILED)
        except PanelError as err:
            logger.info(f"{operation} rejected locally: {err.message}")
            result = self._failure(operation, err, Outcome.REJECTED)
        finally:
            self._in_flight = None
            self.last_state = terminal
            self.state = MutationState.IDLE
        logger.debug(f"{operation} finished: {terminal.value}")
        return self._emit(result)

    async def _apply_reorder(self, operation: str, build: Callable[[Forest], Forest]) -> MutationResult:
        snapshot = self._forest
        updated = build(snapshot)
        if updated == snapshot:
            return self._result(operation, Outcome.APPLIED, "Order unchanged", Severity.INFO)

        self._set_forest(updated)
        try:
            await self.store.reorder_entities(updated)
        except RemoteStoreError:
            self._set_forest(snapshot)
            raise
        return self._result(operation, Outcome.APPLIED, "Entities reordered successfully")

    def _open_pending_delete(self, removed: tree_ops.RemovedNode) -> None:
        self._discard_pending_delete()
        pending = PendingDelete(
            entity=removed.node,
            parent_id=removed.parent_id,
            original_position=removed.original_position,
            expiry=time.monotonic() + self.undo_window,
        )
        self._pending = pending
        self._undo_task = asyncio.create_task(self._count_down(pending))

    async def _count_down(self, pending: PendingDelete) -> None:
        while True:
            remaining = pending.seconds_left()
            if remaining <= 0:
                break
            self._dispatch(self._countdown_listeners, math.ceil(remaining), pending)
            await asyncio.sleep(min(self.tick_interval, remaining))

        if self._pending is pending:
            self._pending = None
            self._undo_task = None
            logger.info(f'Undo window for "{pending.entity.name}" expired')
            self._dispatch(self._countdown_listeners, 0, pending)

    def _discard_pending_delete(self) -> None:
        task = self._undo_task
        self._pending = None
        self._undo_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _set_forest(self, forest: Forest) -> None:
        self._forest = forest
        self._dispatch(self._forest_listeners, forest)

    def _result(
        self,
        operation: str,
        outcome: Outcome,
        message: str,
        severity: Severity = Severity.SUCCESS,
        entity: Entity | None = None,
    ) -> MutationResult:
        return MutationResult(operation, outcome, Notification.build(message, severity), entity=entity)

    def _failure(self, operation: str, err: PanelError, outcome: Outcome) -> MutationResult:
        severity = Severity.ERROR if isinstance(err, RemoteStoreError) else Severity.WARNING
        return MutationResult(operation, outcome, Notification.build(err.message, severity), error=err)

    def _emit(self, result: MutationResult) -> MutationResult:
        self.notifications.append(result.notification)
        self._dispatch(self._notification_listeners, result.notification)
        return result

    def _dispatch(self, listeners: list, *args: Any) -> None:
        for callback in list(listeners):
            try:
                callback(*args)
            except Exception:  # noqa: BLE001
                logger.exception(f"Listener {callback!r} failed")
