"""
Merchant Pipeline - Column Index

Builds the ordered stage -> [record ids] partition from a full record set,
and computes the position repairs that bring stored positions back to 0..n-1.

Always rebuilt from scratch on every server snapshot.
"""

from typing import Dict, Iterable, List, Optional

from merchant_pipeline.config import now_iso
from merchant_pipeline.models import (
    STAGE_ORDER,
    ColumnIndex,
    PipelineRecord,
    PipelineStage,
    RecordUpdate,
)


def _sort_key(record: PipelineRecord):
    # id tie-break keeps the order total even with colliding positions
    return record.position, record.id


def build_column_index(records: Iterable[PipelineRecord]) -> ColumnIndex:
    """Group by stage, order each column by (position, id)"""
    grouped: Dict[PipelineStage, List[PipelineRecord]] = {stage: [] for stage in STAGE_ORDER}
    for record in records:
        grouped[record.stage].append(record)

    return ColumnIndex.from_columns({
        stage: [r.id for r in sorted(members, key=_sort_key)]
        for stage, members in grouped.items()
    })


def move_in_index(index: ColumnIndex, record_id: str, stage: PipelineStage, position: int) -> ColumnIndex:
    """Shadow copy of `index` with one record spliced into a new slot"""
    return index.with_move(record_id, stage, position)


def position_repairs(
    records: Iterable[PipelineRecord],
    index: Optional[ColumnIndex] = None,
    now: Optional[str] = None,
) -> List[RecordUpdate]:
    """
    Updates for every record whose stored position differs from its
    ordinal slot in its column. Empty when the board is already sequential.
    """
    records = list(records)
    if index is None:
        index = build_column_index(records)
    now = now or now_iso()
    by_id = {r.id: r for r in records}

    updates: List[RecordUpdate] = []
    for stage in STAGE_ORDER:
        for slot, record_id in enumerate(index.column(stage)):
            record = by_id.get(record_id)
            if record is None or record.position == slot:
                continue
            updates.append(RecordUpdate(
                record_id=record_id,
                fields={"position": slot, "updated_at": now},
            ))
    return updates
