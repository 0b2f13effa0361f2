import uuid

import pytest

from docspace.schemas.event import PermissionEventName
from docspace.services.permission_event_service import PermissionEventPublisher, inheritance_batch


def test_handlers_filter_by_name():
    publisher = PermissionEventPublisher()
    shared, everything = [], []
    publisher.subscribe(shared.append, PermissionEventName.DOCUMENT_SHARED)
    publisher.subscribe(everything.append)

    publisher.emit(PermissionEventName.DOCUMENT_SHARED, document_ids=[uuid.uuid4()])
    publisher.emit(PermissionEventName.ACCESS_REVOKED, revoked_user_id="x")

    assert [e.name for e in shared] == [PermissionEventName.DOCUMENT_SHARED]
    assert [e.name for e in everything] == [PermissionEventName.DOCUMENT_SHARED, PermissionEventName.ACCESS_REVOKED]
    assert everything[1].data == {"revoked_user_id": "x"}


def test_unsubscribe_and_clear():
    publisher = PermissionEventPublisher()
    received = []
    publisher.subscribe(received.append)
    publisher.unsubscribe(received.append)
    publisher.emit(PermissionEventName.DOCUMENT_SHARED)
    assert received == []

    publisher.subscribe(received.append)
    publisher.clear()
    publisher.emit(PermissionEventName.DOCUMENT_SHARED)
    assert received == []


def test_inheritance_batch_emits_once_with_unique_ids(events):
    first, second = uuid.uuid4(), uuid.uuid4()

    with inheritance_batch(events, reason="move") as batch:
        batch.add(first, second)
        batch.add(first)

    assert events.names() == ["permission_inheritance.changed"]
    assert events.received[0].document_ids == [first, second]
    assert events.received[0].data == {"reason": "move"}


def test_empty_or_failed_batch_emits_nothing(events):
    with inheritance_batch(events):
        pass

    with pytest.raises(RuntimeError):
        with inheritance_batch(events) as batch:
            batch.add(uuid.uuid4())
            raise RuntimeError("boom")

    assert events.received == []
