"""
Merchant Pipeline - Record Store

Persistence collaborator of the board:
- subscribe(collection, on_change) -> unsubscribe
  on_change receives the FULL current document list on every change
- batch_write(collection, updates): all-or-nothing
- no optimistic locking: last write wins at field level

MotorRecordStore is the MongoDB implementation; InMemoryRecordStore backs
local runs and the test suite.
"""

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo import UpdateOne
from pymongo.errors import PyMongoError

logger = logging.getLogger("record_store")

Snapshot = List[Dict[str, Any]]
SnapshotCallback = Callable[[Snapshot], None]
Unsubscribe = Callable[[], None]


class BatchWriteError(Exception):
    """Raised when an atomic batch could not be committed (nothing was applied)"""
    pass


class RecordStore(ABC):
    """Interface expected by the realtime adapter and the reconciler"""

    @abstractmethod
    def subscribe(self, collection: str, on_change: SnapshotCallback) -> Unsubscribe:
        ...

    @abstractmethod
    async def batch_write(self, collection: str, updates: List[Any]) -> None:
        ...

    @abstractmethod
    async def fetch_all(self, collection: str) -> Snapshot:
        ...

    @abstractmethod
    async def insert_activity(self, entry: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def list_activity(
        self, query: Optional[Dict[str, Any]] = None, limit: int = 100, skip: int = 0
    ) -> Tuple[List[Dict[str, Any]], int]:
        ...


# ==================== MONGODB ====================

def _id_filter(record_id: str) -> Dict[str, Any]:
    """Match on our own `id` field, or on `_id` for legacy documents"""
    clauses: List[Dict[str, Any]] = [{"id": record_id}, {"_id": record_id}]
    if ObjectId.is_valid(record_id):
        clauses.append({"_id": ObjectId(record_id)})
    return {"$or": clauses}


def _serialize(doc: Dict[str, Any]) -> Dict[str, Any]:
    if isinstance(doc.get("_id"), ObjectId):
        doc["_id"] = str(doc["_id"])
    return doc


class MotorRecordStore(RecordStore):
    """MongoDB store (change streams + transactions, requires a replica set)"""

    def __init__(self, database, client=None):
        self.db = database
        self.client = client or database.client

    async def fetch_all(self, collection: str) -> Snapshot:
        docs = await self.db[collection].find({}).to_list(None)
        return [_serialize(d) for d in docs]

    def subscribe(self, collection: str, on_change: SnapshotCallback) -> Unsubscribe:
        task = asyncio.get_running_loop().create_task(self._watch(collection, on_change))

        def unsubscribe() -> None:
            task.cancel()

        return unsubscribe

    async def _watch(self, collection: str, on_change: SnapshotCallback) -> None:
        try:
            # Stream opened before the first read so no change falls in between
            async with self.db[collection].watch() as stream:
                on_change(await self.fetch_all(collection))
                async for change in stream:
                    logger.debug(f"[{collection}] change: {change.get('operationType')}")
                    on_change(await self.fetch_all(collection))
        except PyMongoError as e:
            logger.error(f"[{collection}] change stream stopped: {e}")

    async def batch_write(self, collection: str, updates: List[Any]) -> None:
        if not updates:
            return
        operations = [UpdateOne(_id_filter(u.record_id), {"$set": u.fields}) for u in updates]
        try:
            async with await self.client.start_session() as session:
                async with session.start_transaction():
                    result = await self.db[collection].bulk_write(operations, ordered=True, session=session)
                    if result.matched_count != len(operations):
                        # Raising inside the transaction aborts it
                        raise BatchWriteError(
                            f"Batch matched {result.matched_count}/{len(operations)} documents"
                        )
        except PyMongoError as e:
            raise BatchWriteError(str(e)) from e

    async def insert_activity(self, entry: Dict[str, Any]) -> None:
        await self.db.activity_logs.insert_one(dict(entry))

    async def list_activity(self, query=None, limit: int = 100, skip: int = 0):
        query = query or {}
        logs = await self.db.activity_logs.find(query, {"_id": 0}) \
            .sort("created_at", -1) \
            .skip(skip) \
            .limit(limit) \
            .to_list(limit)
        total = await self.db.activity_logs.count_documents(query)
        return logs, total


# ==================== IN MEMORY ====================

class InMemoryRecordStore(RecordStore):
    """
    Dict-backed store. Change notifications are delivered on the next loop
    iteration (call_soon), like a server push would be.
    """

    def __init__(self, collections: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._listeners: Dict[str, List[SnapshotCallback]] = {}
        self._activity: List[Dict[str, Any]] = []
        self.batches: List[Tuple[str, List[Any]]] = []
        for name, docs in (collections or {}).items():
            for doc in docs:
                self._documents(name)[str(doc.get("id", doc.get("_id")))] = copy.deepcopy(doc)

    def _documents(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def _snapshot(self, collection: str) -> Snapshot:
        return [copy.deepcopy(d) for d in self._documents(collection).values()]

    def listener_count(self, collection: str) -> int:
        return len(self._listeners.get(collection, []))

    def _notify(self, collection: str) -> None:
        listeners = list(self._listeners.get(collection, []))
        if not listeners:
            return
        snapshot = self._snapshot(collection)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        for listener in listeners:
            if loop is not None:
                loop.call_soon(listener, copy.deepcopy(snapshot))
            else:
                listener(copy.deepcopy(snapshot))

    def subscribe(self, collection: str, on_change: SnapshotCallback) -> Unsubscribe:
        self._listeners.setdefault(collection, []).append(on_change)
        on_change(self._snapshot(collection))

        def unsubscribe() -> None:
            listeners = self._listeners.get(collection, [])
            if on_change in listeners:
                listeners.remove(on_change)

        return unsubscribe

    async def fetch_all(self, collection: str) -> Snapshot:
        return self._snapshot(collection)

    async def batch_write(self, collection: str, updates: List[Any]) -> None:
        documents = self._documents(collection)
        missing = [u.record_id for u in updates if u.record_id not in documents]
        if missing:
            raise BatchWriteError(f"Unknown documents in batch: {missing}")
        for update in updates:
            documents[update.record_id].update(copy.deepcopy(update.fields))
        self.batches.append((collection, list(updates)))
        self._notify(collection)

    def put(self, collection: str, doc: Dict[str, Any]) -> None:
        """Insert or replace a document (simulates a write from another client)"""
        self._documents(collection)[str(doc.get("id", doc.get("_id")))] = copy.deepcopy(doc)
        self._notify(collection)

    def remove(self, collection: str, record_id: str) -> None:
        self._documents(collection).pop(record_id, None)
        self._notify(collection)

    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        doc = self._documents(collection).get(record_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def insert_activity(self, entry: Dict[str, Any]) -> None:
        self._activity.append(dict(entry))

    async def list_activity(self, query=None, limit: int = 100, skip: int = 0):
        query = query or {}
        logs = [e for e in self._activity if all(e.get(k) == v for k, v in query.items())]
        logs.sort(key=lambda e: e.get("created_at", ""), reverse=True)
        return [dict(e) for e in logs[skip:skip + limit]], len(logs)
