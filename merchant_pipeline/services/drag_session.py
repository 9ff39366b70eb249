"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Merchant Pipeline - Drag Session Controller                                 ║
║                                                                              ║
║  IDLE → DRAGGING → (DROPPED | CANCELLED) → IDLE                              ║
║                                                                              ║
║  - Un press qui ne dépasse pas la distance d'activation = un CLICK           ║
║  - Le shadow index sert UNIQUEMENT au rendu, jamais écrit en base            ║
║  - Positions exprimées "comme si la carte était déjà retirée"                ║
║  - Une instance par board (aucun état global)                                ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import math
from typing import Callable, Optional, Tuple

from merchant_pipeline.config import DRAG_ACTIVATION_DISTANCE
from merchant_pipeline.models import (
    ColumnIndex,
    DragOutcome,
    DragSession,
    DragState,
    DropTarget,
    DropTuple,
    OutcomeType,
    PipelineStage,
    parse_stage,
)

logger = logging.getLogger("drag_session")


class DragSessionController:
    """
    Tracks one pointer gesture over a board.

    `index_provider` returns the authoritative ColumnIndex; it is read, never
    mutated. The shadow index is a derived copy rebuilt on every hover change.
    """

    def __init__(
        self,
        index_provider: Callable[[], ColumnIndex],
        activation_distance: float = DRAG_ACTIVATION_DISTANCE,
    ):
        self._index_provider = index_provider
        self.activation_distance = activation_distance
        self.state = DragState.IDLE
        self.session: Optional[DragSession] = None
        self.shadow_index: Optional[ColumnIndex] = None
        self._press: Optional[Tuple[str, float, float]] = None

    @property
    def is_dragging(self) -> bool:
        return self.state == DragState.DRAGGING

    # ==================== POINTER EVENTS ====================

    def pointer_down(self, record_id: str, x: float, y: float) -> None:
        """Press over a card. Nothing starts until the activation distance is exceeded."""
        if self.is_dragging:
            logger.debug(f"pointer_down on {record_id} ignored, drag of {self.session.dragged_id} in progress")
            return
        if self._index_provider().locate(record_id) is None:
            logger.debug(f"pointer_down on unknown record {record_id} ignored")
            return
        self._press = (record_id, x, y)

    def pointer_move(self, x: float, y: float, target: Optional[DropTarget] = None) -> bool:
        """
        Pointer moved. Returns True when the shadow index changed.
        """
        started = False
        if self.state == DragState.IDLE:
            if self._press is None:
                return False
            _, start_x, start_y = self._press
            if math.hypot(x - start_x, y - start_y) < self.activation_distance:
                return False
            if not self._begin_drag():
                return False
            started = True

        return self._hover(target) or started

    def pointer_up(self, target: Optional[DropTarget] = None) -> DragOutcome:
        """
        Release. A press that never became a drag is a click (navigate to the
        card); a release over a valid slot is a drop; anything else cancels.
        """
        if not self.is_dragging:
            press, self._press = self._press, None
            if press is not None:
                return DragOutcome(type=OutcomeType.CLICK, record_id=press[0])
            return DragOutcome(type=OutcomeType.CANCELLED)

        session = self.session
        resolved = self._resolve(target)
        located = self._index_provider().locate(session.dragged_id)
        if resolved is None or located is None:
            return self._finish_cancelled()

        # Source re-read at drop time: the card may have shifted remotely since the press
        source_stage, source_position = located
        dest_stage, dest_position = resolved
        drop = DropTuple(
            record_id=session.dragged_id,
            source_stage=source_stage,
            source_position=source_position,
            dest_stage=dest_stage,
            dest_position=dest_position,
        )
        self.state = DragState.DROPPED
        logger.debug(
            f"Drop {drop.record_id}: {drop.source_stage.value}[{drop.source_position}] -> "
            f"{drop.dest_stage.value}[{drop.dest_position}]"
        )
        self._reset()
        return DragOutcome(type=OutcomeType.DROPPED, record_id=drop.record_id, drop=drop)

    def cancel(self) -> DragOutcome:
        """Explicit cancel (escape key)"""
        if not self.is_dragging:
            self._press = None
            return DragOutcome(type=OutcomeType.CANCELLED)
        return self._finish_cancelled()

    # ==================== INTERNALS ====================

    def _begin_drag(self) -> bool:
        record_id = self._press[0]
        index = self._index_provider()
        located = index.locate(record_id)
        if located is None:
            # Card vanished (remote delete) between press and activation
            self._press = None
            return False

        source_stage, source_position = located
        self.session = DragSession(
            dragged_id=record_id,
            source_stage=source_stage,
            source_position=source_position,
        )
        self.shadow_index = index
        self.state = DragState.DRAGGING
        self._press = None
        logger.debug(f"Drag started: {record_id} from {source_stage.value}[{source_position}]")
        return True

    def _resolve(self, target: Optional[DropTarget]) -> Optional[Tuple[PipelineStage, int]]:
        """Validate a target against the authoritative index; clamp its slot"""
        if target is None:
            return None
        stage = parse_stage(target.stage)
        if stage is None:
            return None
        remaining = [rid for rid in self._index_provider().column(stage) if rid != self.session.dragged_id]
        return stage, max(0, min(target.position, len(remaining)))

    def _hover(self, target: Optional[DropTarget]) -> bool:
        resolved = self._resolve(target)
        hover = (None, None) if resolved is None else resolved
        if hover == (self.session.current_hover_stage, self.session.current_hover_position):
            return False

        self.session.current_hover_stage, self.session.current_hover_position = hover
        index = self._index_provider()
        if resolved is None:
            self.shadow_index = index
        else:
            self.shadow_index = index.with_move(self.session.dragged_id, *resolved)
        return True

    def _finish_cancelled(self) -> DragOutcome:
        record_id = self.session.dragged_id if self.session else None
        self.state = DragState.CANCELLED
        logger.debug(f"Drag cancelled: {record_id}")
        self._reset()
        return DragOutcome(type=OutcomeType.CANCELLED, record_id=record_id)

    def _reset(self) -> None:
        self.session = None
        self.shadow_index = None
        self._press = None
        self.state = DragState.IDLE
