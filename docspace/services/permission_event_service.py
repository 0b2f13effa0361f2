# docspace/services/permission_event_service.py
"""
In-process hooks for permission changes.

Delivery is fire-and-forget: handlers run synchronously in publish order and
a failing handler is logged and skipped, never propagated to the operation
that emitted the event.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator
from uuid import UUID

from docspace.schemas.event import PermissionEvent, PermissionEventName

logger = logging.getLogger(__name__)

EventHandler = Callable[[PermissionEvent], None]


class PermissionEventPublisher:
    def __init__(self) -> None:
        self._handlers: dict[PermissionEventName | None, list[EventHandler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, handler: EventHandler, name: PermissionEventName | None = None) -> None:
        """Register handler for one event name, or for every event when name is None."""
        with self._lock:
            self._handlers.setdefault(name, []).append(handler)

    def unsubscribe(self, handler: EventHandler, name: PermissionEventName | None = None) -> None:
        with self._lock:
            handlers = self._handlers.get(name, [])
            if handler in handlers:
                handlers.remove(handler)

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()

    def publish(self, event: PermissionEvent) -> None:
        with self._lock:
            handlers = list(self._handlers.get(event.name, [])) + list(self._handlers.get(None, []))

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.warning(f"Permission event handler failed for {event.name.value}", exc_info=True)

    def emit(
        self,
        name: PermissionEventName,
        *,
        workspace_id: UUID | None = None,
        actor_id: UUID | None = None,
        document_ids: Iterable[UUID] = (),
        **data,
    ) -> PermissionEvent:
        event = PermissionEvent(
            name=name,
            workspace_id=workspace_id,
            actor_id=actor_id,
            document_ids=list(document_ids),
            data=data,
        )
        self.publish(event)
        return event


publisher = PermissionEventPublisher()


class InheritanceBatch:
    """Collects document ids whose inherited permissions changed."""

    def __init__(self) -> None:
        self.document_ids: list[UUID] = []

    def add(self, *document_ids: UUID) -> None:
        for document_id in document_ids:
            if document_id not in self.document_ids:
                self.document_ids.append(document_id)


@contextmanager
def inheritance_batch(
    events: PermissionEventPublisher | None = None,
    *,
    workspace_id: UUID | None = None,
    actor_id: UUID | None = None,
    **data,
) -> Iterator[InheritanceBatch]:
    """
    Emit a single permission_inheritance.changed event for everything added
    inside the block. Nothing is emitted if the block raises or adds no ids.
    """
    batch = InheritanceBatch()
    yield batch
    if batch.document_ids:
        (events or publisher).emit(
            PermissionEventName.INHERITANCE_CHANGED,
            workspace_id=workspace_id,
            actor_id=actor_id,
            document_ids=batch.document_ids,
            **data,
        )
