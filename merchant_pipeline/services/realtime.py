"""
Merchant Pipeline - Realtime Subscription Adapter

Owns the authoritative ColumnIndex. Every snapshot pushed by the store is
normalized, re-indexed from scratch and published; the newest snapshot
always wins, nothing is merged.

Usage:
    async with RealtimeSubscriptionAdapter(store, "merchants") as adapter:
        async for index in adapter.snapshots():
            render(index)
"""

import asyncio
import logging
from typing import AsyncIterator, Callable, Dict, List, Optional

from merchant_pipeline.models import ColumnIndex, PipelineRecord
from merchant_pipeline.services.column_index import build_column_index
from merchant_pipeline.services.normalizer import normalize_records
from merchant_pipeline.services.store import RecordStore, Snapshot, Unsubscribe

logger = logging.getLogger("realtime")

IndexCallback = Callable[[ColumnIndex], None]


class RealtimeSubscriptionAdapter:
    """Live subscription to one record collection"""

    def __init__(self, store: RecordStore, collection: str):
        self.store = store
        self.collection = collection
        self.current: ColumnIndex = ColumnIndex.empty()
        self.records: Dict[str, PipelineRecord] = {}
        self.version = 0
        self._unsubscribe: Optional[Unsubscribe] = None
        self._running = False
        self._callbacks: List[IndexCallback] = []
        self._queues: List[asyncio.Queue] = []

    @property
    def active(self) -> bool:
        return self._running

    # ==================== LIFECYCLE ====================

    async def start(self) -> None:
        if self.active:
            return
        self._running = True
        self._unsubscribe = self.store.subscribe(self.collection, self._on_change)
        logger.info(f"[REALTIME] Subscribed to {self.collection}")

        if self.version == 0:
            # Seed from a direct read; a push arriving meanwhile takes precedence
            snapshot = await self.store.fetch_all(self.collection)
            if self.version == 0:
                self._on_change(snapshot)

    async def stop(self) -> None:
        self._running = False
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()
            logger.info(f"[REALTIME] Unsubscribed from {self.collection}")
        for queue in self._queues:
            self._offer(queue, None)
        self._queues.clear()

    async def __aenter__(self) -> "RealtimeSubscriptionAdapter":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # ==================== FAN-OUT ====================

    def on_snapshot(self, callback: IndexCallback) -> Callable[[], None]:
        """Register a listener; returns the function that removes it"""
        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    async def snapshots(self) -> AsyncIterator[ColumnIndex]:
        """
        Yields the current index, then every new one. A slow consumer only
        ever sees the latest snapshot. Ends when the adapter stops.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        queue.put_nowait(self.current)
        self._queues.append(queue)
        try:
            while True:
                index = await queue.get()
                if index is None:
                    return
                yield index
        finally:
            if queue in self._queues:
                self._queues.remove(queue)

    # ==================== PUSH HANDLING ====================

    def _on_change(self, snapshot: Snapshot) -> None:
        if not self.active:
            return
        records = normalize_records(snapshot)
        index = build_column_index(records)
        self.records = {r.id: r for r in records}
        self.current = index
        self.version += 1
        logger.debug(f"[REALTIME] {self.collection} v{self.version}: {len(records)} record(s)")

        for callback in list(self._callbacks):
            try:
                callback(index)
            except Exception as e:
                logger.error(f"[REALTIME] Snapshot listener failed: {e}")
        for queue in self._queues:
            self._offer(queue, index)

    @staticmethod
    def _offer(queue: asyncio.Queue, item) -> None:
        # One-slot queue: the newest item replaces an unread one
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(item)
