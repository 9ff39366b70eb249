"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Merchant Pipeline - Reconciler                                              ║
║                                                                              ║
║  SEUL CE MODULE écrit stage / position des cartes du board.                  ║
║                                                                              ║
║  RÈGLES:                                                                     ║
║  - drop sur l'origine = AUCUNE écriture, AUCUNE notification                 ║
║  - toutes les mises à jour partent dans UN SEUL batch atomique               ║
║  - chaque document écrit reçoit un updated_at rafraîchi                      ║
║  - notification uniquement si le stage a changé ET le batch est committé     ║
║  - échec de notification = warning, jamais de rollback                       ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

from merchant_pipeline.config import now_iso
from merchant_pipeline.models import (
    ColumnIndex,
    DropTuple,
    PipelineRecord,
    PipelineStage,
    ReconcileResult,
    RecordUpdate,
    stage_label,
)
from merchant_pipeline.services.activity_logger import log_activity
from merchant_pipeline.services.notifier import NotificationError, StatusChangeNotifier
from merchant_pipeline.services.store import BatchWriteError, RecordStore

logger = logging.getLogger("reconciler")


class ReconcileError(Exception):
    """The drop could not be committed; nothing was written"""
    pass


class RecordNotFoundError(ReconcileError):
    """The dragged record is not on the authoritative board any more"""
    pass


def clamped_dest_position(drop: DropTuple, index: ColumnIndex) -> int:
    """dest_position clamped to the destination column without the dragged record"""
    remaining = [rid for rid in index.column(drop.dest_stage) if rid != drop.record_id]
    return max(0, min(drop.dest_position, len(remaining)))


def compute_drop_updates(
    drop: DropTuple,
    index: ColumnIndex,
    positions: Optional[Dict[str, int]] = None,
    now: Optional[str] = None,
) -> List[RecordUpdate]:
    """
    Minimal set of updates applying `drop` to the authoritative `index`.

    dest_position is counted without the dragged record. Every record of the
    source and destination columns ends up at its ordinal slot; a record is
    written only if its stage or stored position actually changes.
    `positions` holds the stored positions (defaults to the ordinal slots).

    Raises:
        RecordNotFoundError if the dragged record is not in `index`
    """
    located = index.locate(drop.record_id)
    if located is None:
        raise RecordNotFoundError(f"Record {drop.record_id} is not on the board")

    current_stage, current_slot = located
    if (current_stage, current_slot) != (drop.source_stage, drop.source_position):
        logger.info(
            f"[RECONCILER] {drop.record_id} moved remotely during drag: "
            f"expected {drop.source_stage.value}[{drop.source_position}], "
            f"found {current_stage.value}[{current_slot}]"
        )

    now = now or now_iso()

    # Where every touched record sits now
    before: Dict[str, Tuple[PipelineStage, int]] = {}
    touched = {current_stage, drop.dest_stage}
    for stage in touched:
        for slot, record_id in enumerate(index.column(stage)):
            before[record_id] = (stage, slot)
    if positions:
        before = {rid: (stage, positions.get(rid, slot)) for rid, (stage, slot) in before.items()}

    # Where they end up
    source_after = [rid for rid in index.column(current_stage) if rid != drop.record_id]
    if drop.dest_stage == current_stage:
        dest_after = source_after
    else:
        dest_after = [rid for rid in index.column(drop.dest_stage) if rid != drop.record_id]
    dest_slot = max(0, min(drop.dest_position, len(dest_after)))
    dest_after.insert(dest_slot, drop.record_id)

    after: Dict[str, Tuple[PipelineStage, int]] = {}
    if drop.dest_stage != current_stage:
        for slot, record_id in enumerate(source_after):
            after[record_id] = (current_stage, slot)
    for slot, record_id in enumerate(dest_after):
        after[record_id] = (drop.dest_stage, slot)

    # Dragged record first, then gap closing / shift-up of its neighbours
    ordered = [drop.record_id] + [rid for rid in after if rid != drop.record_id]
    updates: List[RecordUpdate] = []
    for record_id in ordered:
        stage, slot = after[record_id]
        if before.get(record_id) == (stage, slot):
            continue
        fields = {"position": slot, "updated_at": now}
        if record_id == drop.record_id:
            fields = {"stage": stage.value, **fields}
        updates.append(RecordUpdate(record_id=record_id, fields=fields))

    return updates


class Reconciler:
    """
    Turns a drop into one atomic batch, then fires the best-effort side
    effects (status change notification, activity log).
    """

    def __init__(
        self,
        store: RecordStore,
        collection: str,
        notifier: Optional[StatusChangeNotifier] = None,
        log_activities: bool = True,
        background_notifications: bool = False,
    ):
        self.store = store
        self.collection = collection
        self.notifier = notifier or StatusChangeNotifier()
        self.log_activities = log_activities
        self.background_notifications = background_notifications
        self._pending: Set[asyncio.Task] = set()

    async def reconcile(
        self,
        drop: DropTuple,
        index: ColumnIndex,
        records: Optional[Iterable[PipelineRecord]] = None,
        user: Optional[dict] = None,
    ) -> ReconcileResult:
        """
        Commit `drop` against the authoritative `index` (as of drop time).

        Raises:
            RecordNotFoundError if the record left the board
            ReconcileError if the batch failed (nothing applied)
        """
        located = index.locate(drop.record_id)
        if located is None:
            raise RecordNotFoundError(f"Record {drop.record_id} is not on the board")
        old_stage = located[0]

        # Origin is where the record sits NOW, not where the drag started
        if located == (drop.dest_stage, clamped_dest_position(drop, index)):
            logger.debug(f"[RECONCILER] {drop.record_id} dropped on its origin, nothing to write")
            return ReconcileResult()

        positions = {r.id: r.position for r in records} if records is not None else None
        updates = compute_drop_updates(drop, index, positions=positions)
        if not updates:
            logger.debug(f"[RECONCILER] {drop.record_id} already in place, nothing to write")
            return ReconcileResult()

        try:
            await self.store.batch_write(self.collection, updates)
        except BatchWriteError as e:
            logger.error(f"[RECONCILER] Batch failed for {drop.record_id} ({len(updates)} updates): {e}")
            raise ReconcileError(f"Could not move {drop.record_id}, please retry") from e

        result = ReconcileResult(
            committed=True,
            updates=updates,
            stage_changed=old_stage != drop.dest_stage,
        )
        logger.info(
            f"[RECONCILER] {drop.record_id} -> {drop.dest_stage.value} "
            f"| {len(updates)} document(s) written"
        )

        if result.stage_changed:
            await self._after_stage_change(drop.record_id, old_stage, drop.dest_stage, user, result)

        return result

    async def drain(self) -> None:
        """Wait for background notifications still in flight"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ==================== SIDE EFFECTS ====================

    async def _after_stage_change(
        self,
        record_id: str,
        old_stage: PipelineStage,
        new_stage: PipelineStage,
        user: Optional[dict],
        result: ReconcileResult,
    ) -> None:
        if self.background_notifications:
            if self.notifier.enabled:
                task = asyncio.get_running_loop().create_task(self._notify(record_id, old_stage, new_stage))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)
                result.notification_scheduled = True
        else:
            warning = await self._notify(record_id, old_stage, new_stage)
            if warning:
                result.warnings.append(warning)
            else:
                result.notified = self.notifier.enabled

        if not self.log_activities:
            return
        try:
            await log_activity(
                self.store,
                "status_change",
                record_id,
                user=user,
                description=f"Status changed from {stage_label(old_stage)} to {stage_label(new_stage)}",
                details={"old_stage": old_stage.value, "new_stage": new_stage.value},
            )
        except Exception as e:
            logger.warning(f"[RECONCILER] Activity log failed for {record_id}: {e}")
            result.warnings.append(f"Activity log failed: {e}")

    async def _notify(self, record_id: str, old_stage: PipelineStage, new_stage: PipelineStage) -> Optional[str]:
        """Returns a warning message on failure, None otherwise"""
        try:
            await self.notifier.notify_status_change(record_id, old_stage, new_stage)
        except NotificationError as e:
            logger.warning(f"[RECONCILER] Status change notification failed for {record_id}: {e}")
            return f"Notification failed: {e}"
        return None
