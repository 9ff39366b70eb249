"""
Merchant Pipeline - Board

One board instance = one realtime subscription + one drag controller +
one reconciler. Several boards can live side by side (no global state).

What is displayed, by priority:
  1. the shadow index while a drag is in progress
  2. the optimistic prediction of a committed drop, until the next server push
  3. the authoritative index from the realtime adapter
"""

import logging
from typing import List, Optional

from merchant_pipeline.config import DRAG_ACTIVATION_DISTANCE, PIPELINE_COLLECTION
from merchant_pipeline.models import (
    ColumnIndex,
    DragOutcome,
    DropTarget,
    DropTuple,
    OutcomeType,
    ReconcileResult,
)
from merchant_pipeline.services.drag_session import DragSessionController
from merchant_pipeline.services.notifier import StatusChangeNotifier
from merchant_pipeline.services.realtime import RealtimeSubscriptionAdapter
from merchant_pipeline.services.reconciler import Reconciler, ReconcileError
from merchant_pipeline.services.store import RecordStore

logger = logging.getLogger("board")


class PipelineBoard:
    def __init__(
        self,
        store: RecordStore,
        collection: str = PIPELINE_COLLECTION,
        notifier: Optional[StatusChangeNotifier] = None,
        activation_distance: float = DRAG_ACTIVATION_DISTANCE,
        user: Optional[dict] = None,
    ):
        self.adapter = RealtimeSubscriptionAdapter(store, collection)
        self.reconciler = Reconciler(store, collection, notifier, background_notifications=True)
        self.drag = DragSessionController(lambda: self.adapter.current, activation_distance)
        self.user = user
        self.last_error: Optional[str] = None
        self.last_warnings: List[str] = []
        self._prediction: Optional[ColumnIndex] = None
        self._remove_listener = self.adapter.on_snapshot(self._on_server_snapshot)

    async def start(self) -> None:
        await self.adapter.start()

    async def stop(self) -> None:
        self.drag.cancel()
        await self.adapter.stop()
        await self.reconciler.drain()

    async def __aenter__(self) -> "PipelineBoard":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # ==================== INDEXES ====================

    @property
    def authoritative_index(self) -> ColumnIndex:
        return self.adapter.current

    @property
    def displayed_index(self) -> ColumnIndex:
        if self.drag.is_dragging and self.drag.shadow_index is not None:
            return self.drag.shadow_index
        if self._prediction is not None:
            return self._prediction
        return self.adapter.current

    def _on_server_snapshot(self, index: ColumnIndex) -> None:
        # Server-confirmed state always supersedes the local prediction
        self._prediction = None

    # ==================== POINTER EVENTS ====================

    def pointer_down(self, record_id: str, x: float, y: float) -> None:
        self.drag.pointer_down(record_id, x, y)

    def pointer_move(self, x: float, y: float, target: Optional[DropTarget] = None) -> bool:
        return self.drag.pointer_move(x, y, target)

    def cancel(self) -> DragOutcome:
        return self.drag.cancel()

    async def pointer_up(self, target: Optional[DropTarget] = None) -> DragOutcome:
        """
        Release. Drops are committed right away; a failed batch leaves the
        board on the last server-confirmed index and sets `last_error`.
        """
        outcome = self.drag.pointer_up(target)
        if outcome.type == OutcomeType.DROPPED:
            try:
                await self.commit(outcome.drop)
            except ReconcileError as e:
                logger.info(f"[BOARD] Drop of {outcome.record_id} not applied, board kept on server state: {e}")
        return outcome

    async def commit(self, drop: DropTuple) -> ReconcileResult:
        """
        Run the reconciler against the index that is authoritative right now.

        Raises:
            ReconcileError (also stored in last_error)
        """
        self.last_error = None
        self.last_warnings = []
        index = self.adapter.current
        records = list(self.adapter.records.values())

        if index.locate(drop.record_id) is not None:
            self._prediction = index.with_move(drop.record_id, drop.dest_stage, drop.dest_position)

        try:
            result = await self.reconciler.reconcile(drop, index, records=records, user=self.user)
        except ReconcileError as e:
            self._prediction = None
            self.last_error = str(e)
            logger.warning(f"[BOARD] Drop of {drop.record_id} reverted: {e}")
            raise

        if not result.committed:
            self._prediction = None
        self.last_warnings = list(result.warnings)
        return result
