"""Unit tests for the embedded document store."""

import pytest

from fieldbook.storage.document_store import (
    ChangeKind,
    DocumentNotFound,
    DuplicateKey,
    VersionConflict,
)


@pytest.mark.asyncio
async def test_add_get_and_filter(store):
    first = await store.add("timeSlots", {"fieldId": "F1", "isActive": True})
    await store.add("timeSlots", {"fieldId": "F2", "isActive": True})

    assert first.version == 1
    assert (await store.get("timeSlots", first.id)).data["fieldId"] == "F1"
    assert [d.id for d in await store.list("timeSlots", {"fieldId": "F1"})] == [first.id]
    assert len(await store.list("timeSlots")) == 2
    assert await store.list("reservations") == []


@pytest.mark.asyncio
async def test_returned_documents_are_copies(store):
    document = await store.add("timeSlots", {"fieldId": "F1"})
    document.data["fieldId"] = "changed"

    assert (await store.get("timeSlots", document.id)).data["fieldId"] == "F1"


@pytest.mark.asyncio
async def test_update_checks_expected_version(store):
    document = await store.add("reservations", {"status": "pending"})

    updated = await store.update("reservations", document.id, {"status": "confirmed"}, expected_version=1)
    assert updated.version == 2
    assert updated.data["status"] == "confirmed"

    with pytest.raises(VersionConflict):
        await store.update("reservations", document.id, {"status": "cancelled"}, expected_version=1)


@pytest.mark.asyncio
async def test_update_missing_document(store):
    with pytest.raises(DocumentNotFound):
        await store.update("reservations", "missing", {"status": "confirmed"})


@pytest.mark.asyncio
async def test_delete_if_exists(store):
    document = await store.add("timeSlots", {"fieldId": "F1"})

    assert await store.delete("timeSlots", document.id) is True
    assert await store.delete("timeSlots", document.id) is False
    assert await store.get("timeSlots", document.id) is None


@pytest.mark.asyncio
async def test_unique_key_held_until_released(store):
    document = await store.add("reservations", {"status": "pending"}, unique_key="F1|d|10|11")

    with pytest.raises(DuplicateKey):
        await store.add("reservations", {"status": "pending"}, unique_key="F1|d|10|11")

    await store.update("reservations", document.id, {"status": "cancelled"}, release_unique_key=True)
    second = await store.add("reservations", {"status": "pending"}, unique_key="F1|d|10|11")
    assert second.id != document.id


@pytest.mark.asyncio
async def test_subscribers_receive_changes(store):
    events = []
    unsubscribe = store.subscribe("timeSlots", events.append)

    document = await store.add("timeSlots", {"fieldId": "F1"})
    await store.update("timeSlots", document.id, {"price": 10})
    await store.delete("timeSlots", document.id)
    await store.add("reservations", {"status": "pending"})

    assert [e.kind for e in events] == [ChangeKind.ADDED, ChangeKind.MODIFIED, ChangeKind.REMOVED]
    assert events[1].document.data["price"] == 10
    assert events[2].document is None

    unsubscribe()
    await store.add("timeSlots", {"fieldId": "F1"})
    assert len(events) == 3
    assert store.notifier.subscriber_count("timeSlots") == 0


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_break_writes(store):
    received = []

    def broken(event):
        raise RuntimeError("subscriber failure")

    store.subscribe("timeSlots", broken)
    store.subscribe("timeSlots", received.append)

    document = await store.add("timeSlots", {"fieldId": "F1"})

    assert await store.get("timeSlots", document.id) is not None
    assert len(received) == 1
