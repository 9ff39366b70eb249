"""
Merchant Pipeline — Position repair & scheduler
Run: pytest merchant_pipeline/tests/test_position_repair.py -v
"""

import asyncio

import pytest

from merchant_pipeline.services.position_repair import repair_positions
from merchant_pipeline.services.scheduler import TaskScheduler
from merchant_pipeline.services.store import BatchWriteError, InMemoryRecordStore

COLLECTION = "merchants"


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def messy():
    return [
        {"id": "a", "stage": "lead", "position": 3},
        {"id": "b", "stage": "lead", "position": 3},
        {"id": "c", "stage": "phone", "position": 0},
        {"id": "d", "stage": "phone", "position": 12},
        {"id": "e", "status": "unknown"},
    ]


class FailingStore(InMemoryRecordStore):
    async def batch_write(self, collection, updates):
        raise BatchWriteError("not primary")


class TestRepair:
    def test_repairs_in_one_batch(self):
        store = InMemoryRecordStore({COLLECTION: messy()})
        summary = _run(repair_positions(store, COLLECTION))

        assert summary["records"] == 5
        assert len(store.batches) == 1
        # lead column: e(0), a(3), b(3) -> e, a, b
        assert "position" not in store.get(COLLECTION, "e")
        assert store.get(COLLECTION, "a")["position"] == 1
        assert store.get(COLLECTION, "b")["position"] == 2
        assert store.get(COLLECTION, "d")["position"] == 1
        assert set(summary["repaired_ids"]) == {"a", "b", "d"}

    def test_idempotent(self):
        store = InMemoryRecordStore({COLLECTION: messy()})
        _run(repair_positions(store, COLLECTION))
        second = _run(repair_positions(store, COLLECTION))
        assert second["repaired"] == 0
        assert len(store.batches) == 1

    def test_failure_propagates(self):
        with pytest.raises(BatchWriteError):
            _run(repair_positions(FailingStore({COLLECTION: messy()}), COLLECTION))


class TestScheduler:
    def test_job_swallows_batch_failure(self):
        scheduler = TaskScheduler(FailingStore({COLLECTION: messy()}), COLLECTION, interval_minutes=5)
        assert _run(scheduler.run_position_repair()) is None

    def test_job_runs_repair(self):
        store = InMemoryRecordStore({COLLECTION: messy()})
        scheduler = TaskScheduler(store, COLLECTION, interval_minutes=5)
        assert _run(scheduler.run_position_repair())["repaired"] == 3

    def test_start_registers_interval_job(self):
        async def scenario():
            scheduler = TaskScheduler(InMemoryRecordStore(), COLLECTION, interval_minutes=15)
            scheduler.start()
            job = scheduler.scheduler.get_job("position_repair")
            scheduler.stop()
            return job

        job = _run(scenario())
        assert job is not None
        assert job.trigger.interval.total_seconds() == 15 * 60

    def test_disabled_interval(self):
        scheduler = TaskScheduler(InMemoryRecordStore(), COLLECTION, interval_minutes=0)
        scheduler.start()
        assert scheduler.scheduler is None
        scheduler.stop()
