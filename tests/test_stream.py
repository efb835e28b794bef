"""Tests for the owner-scoped task stream."""

import asyncio
import logging
import pytest
from datetime import datetime, timezone

from tasklanes.models.constants import TASKS_COLLECTION
from tasklanes.store.ports import Document
from tasklanes.sync.stream import decode_snapshot, watch_tasks

RECEIVED_AT = datetime(2026, 4, 1, tzinfo=timezone.utc)


def _data(title, status="todo", order=0):
    return {
        "user_id": "u1",
        "title": title,
        "status": status,
        "order": order,
        "created_at": RECEIVED_AT,
        "updated_at": RECEIVED_AT,
    }


def test_undecodable_documents_skipped(caplog):
    documents = [
        Document(id="good", data=_data("Good")),
        Document(id="bad", data=_data("Bad", status="archived")),
    ]
    with caplog.at_level(logging.WARNING):
        tasks = decode_snapshot(documents, received_at=RECEIVED_AT)
    assert [t.id for t in tasks] == ["good"]
    assert "bad" in caplog.text


def test_snapshot_sorted_and_duplicates_logged(caplog):
    documents = [
        Document(id="c", data=_data("C", order=1)),
        Document(id="done", data=_data("Done", status="completed")),
        Document(id="a", data=_data("A", order=0)),
        Document(id="b", data=_data("B", order=1)),
    ]
    with caplog.at_level(logging.WARNING):
        tasks = decode_snapshot(documents, received_at=RECEIVED_AT)
    assert [t.id for t in tasks][0] == "a"
    assert [t.id for t in tasks][-1] == "done"
    assert "Duplicate order" in caplog.text


@pytest.mark.asyncio
async def test_watch_closes_subscription_when_consumer_stops(store):
    await store.insert(TASKS_COLLECTION, _data("A"))
    stream = watch_tasks(store, "u1")

    first = await stream.__anext__()
    assert [t.title for t in first] == ["A"]
    assert store.subscription_count() == 1

    await stream.aclose()
    assert store.subscription_count() == 0


@pytest.mark.asyncio
async def test_watch_yields_after_each_change(store):
    stream = watch_tasks(store, "u1")
    try:
        assert await stream.__anext__() == []
        await store.insert(TASKS_COLLECTION, _data("A"))
        tasks = await asyncio.wait_for(stream.__anext__(), timeout=1)
        assert [t.title for t in tasks] == ["A"]
    finally:
        await stream.aclose()
