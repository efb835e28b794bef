"""Tests for the SQLAlchemy-backed document store."""

import asyncio
import pytest
from datetime import datetime

from tasklanes.errors import StoreError
from tasklanes.store.ports import SERVER_TIMESTAMP
from tasklanes.sync.codec import decode_timestamp
from tasklanes.sync.stream import decode_snapshot
from tasklanes.models.task import TaskStatus


@pytest.mark.asyncio
async def test_insert_and_query_round_trip(sql_store):
    doc_id = await sql_store.insert(
        "tasks",
        {"user_id": "u1", "title": "A", "order": 0, "created_at": SERVER_TIMESTAMP},
    )
    [doc] = await sql_store.query("tasks", {"user_id": "u1"})
    assert doc.id == doc_id
    assert doc.data["title"] == "A"
    # Datetimes are stored as ISO strings and decode back to instants
    assert isinstance(doc.data["created_at"], str)
    assert isinstance(decode_timestamp(doc.data["created_at"]), datetime)


@pytest.mark.asyncio
async def test_query_is_owner_scoped(sql_store):
    await sql_store.insert("tasks", {"user_id": "u1", "title": "mine"})
    await sql_store.insert("tasks", {"user_id": "u2", "title": "theirs"})
    await sql_store.insert("users", {"user_id": "u1", "display_name": "U1"})
    docs = await sql_store.query("tasks", {"user_id": "u1"})
    assert [d.data["title"] for d in docs] == ["mine"]


@pytest.mark.asyncio
async def test_update_merges_fields(sql_store):
    doc_id = await sql_store.insert("tasks", {"user_id": "u1", "title": "A", "order": 3})
    await sql_store.update("tasks", doc_id, {"order": 4, "updated_at": SERVER_TIMESTAMP})
    [doc] = await sql_store.query("tasks", {})
    assert doc.data["title"] == "A"
    assert doc.data["order"] == 4


@pytest.mark.asyncio
async def test_update_missing_document_rejected(sql_store):
    with pytest.raises(StoreError):
        await sql_store.update("tasks", "missing", {"title": "x"})


@pytest.mark.asyncio
async def test_failed_batch_rolls_back(sql_store):
    first = await sql_store.insert("tasks", {"user_id": "u1", "title": "A"})
    second = await sql_store.insert("tasks", {"user_id": "u1", "title": "B"})

    batch = sql_store.batch()
    batch.delete("tasks", first)
    batch.delete("tasks", second)
    batch.update("tasks", "does-not-exist", {"title": "boom"})
    with pytest.raises(StoreError):
        await batch.commit()

    docs = await sql_store.query("tasks", {"user_id": "u1"})
    assert sorted(d.data["title"] for d in docs) == ["A", "B"]


@pytest.mark.asyncio
async def test_subscription_sees_commits(sql_store):
    subscription = sql_store.subscribe("tasks", {"user_id": "u1"})
    try:
        assert await subscription.__anext__() == []
        await sql_store.insert(
            "tasks",
            {
                "user_id": "u1",
                "title": "Live",
                "status": "todo",
                "order": 0,
                "created_at": SERVER_TIMESTAMP,
                "updated_at": SERVER_TIMESTAMP,
                "history": [],
            },
        )
        documents = await asyncio.wait_for(subscription.__anext__(), timeout=2)
        [task] = decode_snapshot(documents, received_at=datetime.now().astimezone())
        assert task.title == "Live"
        assert task.status == TaskStatus.TODO.value
    finally:
        await subscription.close()
