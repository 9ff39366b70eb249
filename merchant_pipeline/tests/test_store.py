"""
Merchant Pipeline — Record store & activity log
Run: pytest merchant_pipeline/tests/test_store.py -v
"""

import asyncio

import pytest
from bson import ObjectId

from merchant_pipeline.models import RecordUpdate
from merchant_pipeline.services.activity_logger import get_activity_logs, log_activity
from merchant_pipeline.services.store import BatchWriteError, InMemoryRecordStore, _id_filter

COLLECTION = "merchants"


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class TestIdFilter:
    def test_plain_id(self):
        assert _id_filter("m1") == {"$or": [{"id": "m1"}, {"_id": "m1"}]}

    def test_object_id_string(self):
        oid = ObjectId()
        clauses = _id_filter(str(oid))["$or"]
        assert {"_id": oid} in clauses


class TestInMemoryStore:
    def test_batch_is_all_or_nothing(self):
        store = InMemoryRecordStore({COLLECTION: [{"id": "a", "position": 0}]})
        updates = [
            RecordUpdate(record_id="a", fields={"position": 5}),
            RecordUpdate(record_id="missing", fields={"position": 0}),
        ]
        with pytest.raises(BatchWriteError):
            _run(store.batch_write(COLLECTION, updates))
        assert store.get(COLLECTION, "a")["position"] == 0
        assert store.batches == []

    def test_subscribe_delivers_current_snapshot(self):
        store = InMemoryRecordStore({COLLECTION: [{"id": "a"}]})
        seen = []
        unsubscribe = store.subscribe(COLLECTION, seen.append)
        assert seen == [[{"id": "a"}]]
        unsubscribe()
        assert store.listener_count(COLLECTION) == 0

    def test_push_after_write(self):
        async def scenario():
            store = InMemoryRecordStore({COLLECTION: [{"id": "a", "position": 0}]})
            seen = []
            store.subscribe(COLLECTION, seen.append)
            await store.batch_write(COLLECTION, [RecordUpdate(record_id="a", fields={"position": 2})])
            before_push = len(seen)
            await asyncio.sleep(0)
            return before_push, seen

        before_push, seen = _run(scenario())
        assert before_push == 1
        assert seen[-1] == [{"id": "a", "position": 2}]

    def test_snapshots_are_copies(self):
        store = InMemoryRecordStore({COLLECTION: [{"id": "a", "position": 0}]})
        snapshot = _run(store.fetch_all(COLLECTION))
        snapshot[0]["position"] = 99
        assert store.get(COLLECTION, "a")["position"] == 0


class TestActivityLog:
    def test_log_and_query(self):
        store = InMemoryRecordStore()

        async def scenario():
            await log_activity(store, "status_change", "m1", description="first")
            await log_activity(store, "status_change", "m2", user={"id": "u1", "email": "ops@test.io"})
            await log_activity(store, "position_repair", "m1")
            return (
                await get_activity_logs(store, entity_id="m1"),
                await get_activity_logs(store, action="status_change", limit=1),
            )

        by_entity, paged = _run(scenario())
        assert by_entity["total"] == 2
        assert {log["action"] for log in by_entity["logs"]} == {"status_change", "position_repair"}
        assert paged["total"] == 2
        assert len(paged["logs"]) == 1
        assert all(log["performed_by"] == "system" for log in by_entity["logs"])
