"""
Merchant Pipeline - Position repair

Duplicate / gapped positions are tolerated after a partial failure or a
concurrent drag; this pass rewrites every column to 0..n-1 in one batch.
Idempotent: a second run on a repaired board writes nothing.
"""

import logging
from typing import Dict

from merchant_pipeline.services.column_index import build_column_index, position_repairs
from merchant_pipeline.services.normalizer import normalize_records
from merchant_pipeline.services.store import RecordStore

logger = logging.getLogger("position_repair")


async def repair_positions(store: RecordStore, collection: str) -> Dict:
    """
    Read the whole collection, compute the repairs, commit them atomically.

    Raises:
        BatchWriteError if the batch could not be committed
    """
    records = normalize_records(await store.fetch_all(collection))
    index = build_column_index(records)
    updates = position_repairs(records, index)

    if updates:
        await store.batch_write(collection, updates)
        logger.info(f"[REPAIR] {collection}: {len(updates)} position(s) repaired")
    else:
        logger.debug(f"[REPAIR] {collection}: positions already sequential")

    return {
        "collection": collection,
        "records": len(records),
        "repaired": len(updates),
        "repaired_ids": [u.record_id for u in updates],
    }
