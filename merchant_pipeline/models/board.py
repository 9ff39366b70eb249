"""
Board models: column index, drag session, drop tuple, reconcile result.

The ColumnIndex is derived data and never stored. It is frozen: every
change (a drag preview, a fresh server snapshot) produces a new instance.
"""

from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field

from .record import RecordUpdate
from .stage import PipelineStage, STAGE_ORDER


class ColumnIndex(BaseModel):
    """Ordered partition of record IDs by stage"""
    model_config = ConfigDict(frozen=True)

    columns: Dict[PipelineStage, Tuple[str, ...]] = Field(
        default_factory=lambda: {stage: () for stage in STAGE_ORDER}
    )

    @classmethod
    def empty(cls) -> "ColumnIndex":
        return cls(columns={stage: () for stage in STAGE_ORDER})

    @classmethod
    def from_columns(cls, columns: Dict[PipelineStage, List[str]]) -> "ColumnIndex":
        return cls(columns={stage: tuple(columns.get(stage, ())) for stage in STAGE_ORDER})

    def column(self, stage: PipelineStage) -> Tuple[str, ...]:
        return self.columns.get(stage, ())

    def locate(self, record_id: str) -> Optional[Tuple[PipelineStage, int]]:
        """(stage, ordinal position) of a record, None if absent"""
        for stage in STAGE_ORDER:
            column = self.column(stage)
            if record_id in column:
                return stage, column.index(record_id)
        return None

    def record_ids(self) -> Iterator[str]:
        """All IDs, column by column in stage order"""
        for stage in STAGE_ORDER:
            yield from self.column(stage)

    def __len__(self) -> int:
        return sum(len(self.column(stage)) for stage in STAGE_ORDER)

    def with_move(self, record_id: str, stage: PipelineStage, position: int) -> "ColumnIndex":
        """
        New index with record_id removed from wherever it is and inserted
        into `stage` at `position` (counted without the moved record).
        The receiver is left untouched.
        """
        columns = {s: [rid for rid in self.column(s) if rid != record_id] for s in STAGE_ORDER}
        target = columns[stage]
        position = max(0, min(position, len(target)))
        target.insert(position, record_id)
        return ColumnIndex.from_columns(columns)

    def to_dict(self) -> Dict[str, List[str]]:
        return {stage.value: list(self.column(stage)) for stage in STAGE_ORDER}


class DropTarget(BaseModel):
    """Column slot under the pointer. stage is kept raw so unknown columns can be represented."""
    model_config = ConfigDict(frozen=True)

    stage: Union[PipelineStage, str]
    position: int = 0


class DragState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    DROPPED = "dropped"
    CANCELLED = "cancelled"


class DragSession(BaseModel):
    """Ephemeral state of one in-progress drag. Never persisted."""
    dragged_id: str
    source_stage: PipelineStage
    source_position: int
    current_hover_stage: Optional[PipelineStage] = None
    current_hover_position: Optional[int] = None


class DropTuple(BaseModel):
    """Final move handed to the Reconciler"""
    model_config = ConfigDict(frozen=True)

    record_id: str
    source_stage: PipelineStage
    source_position: int = Field(ge=0)
    dest_stage: PipelineStage
    dest_position: int = Field(ge=0)

    @property
    def is_noop(self) -> bool:
        return self.source_stage == self.dest_stage and self.source_position == self.dest_position

    @property
    def changes_stage(self) -> bool:
        return self.source_stage != self.dest_stage


class OutcomeType(str, Enum):
    CLICK = "click"
    DROPPED = "dropped"
    CANCELLED = "cancelled"


class DragOutcome(BaseModel):
    """What a pointer release produced"""
    type: OutcomeType
    record_id: Optional[str] = None
    drop: Optional[DropTuple] = None


class ReconcileResult(BaseModel):
    committed: bool = False
    updates: List[RecordUpdate] = Field(default_factory=list)
    stage_changed: bool = False
    notified: bool = False
    notification_scheduled: bool = False  # sent in the background, outcome only in the logs
    warnings: List[str] = Field(default_factory=list)
