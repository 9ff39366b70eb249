"""
Merchant Pipeline - Board filters (search box + created-at date range)

Filtering hides cards; it never reorders a column.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, Optional

from merchant_pipeline.config import parse_iso
from merchant_pipeline.models import STAGE_ORDER, ColumnIndex, PipelineRecord

logger = logging.getLogger("board_filters")


def record_matches(
    record: PipelineRecord,
    search: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> bool:
    if search:
        term = search.strip().lower()
        haystack = " ".join((record.name, record.email, record.phone)).lower()
        if term and term not in haystack:
            return False

    if date_from or date_to:
        if not record.created_at:
            return False
        try:
            created = parse_iso(record.created_at)
        except ValueError:
            logger.debug(f"Record {record.id}: unparseable created_at {record.created_at!r}")
            return False
        if date_from and created < parse_iso(date_from):
            return False
        if date_to and created > parse_iso(date_to):
            return False

    return True


def filter_index(
    index: ColumnIndex,
    records: Iterable[PipelineRecord],
    search: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> ColumnIndex:
    """Index restricted to the matching records, column order preserved"""
    if not (search or date_from or date_to):
        return index

    by_id: Dict[str, PipelineRecord] = {r.id: r for r in records}
    visible = {
        rid for rid, record in by_id.items()
        if record_matches(record, search, date_from, date_to)
    }
    return ColumnIndex.from_columns({
        stage: [rid for rid in index.column(stage) if rid in visible]
        for stage in STAGE_ORDER
    })
