"""
Merchant Pipeline - Record Normalizer

Decodes the heterogeneous documents found in the collection (legacy field
names from the old lead forms and merchant applications) into the canonical
PipelineRecord. Fails closed: anything unrecognised falls back to defaults,
never to None.

Stage lookup order: stage > pipelineStatus > pipeline_status > status.
"""

import logging
import math
from typing import Any, Dict, Iterable, List, Mapping

from merchant_pipeline.models import (
    FIRST_STAGE,
    PipelineRecord,
    PipelineStage,
    RecordKind,
    parse_stage,
)

logger = logging.getLogger("normalizer")

STAGE_FIELDS = ("stage", "pipelineStatus", "pipeline_status", "status")
NAME_FIELDS = ("name", "businessName", "companyName", "displayName")
FORM_NAME_FIELDS = ("businessName", "dba")


class RecordNormalizationError(Exception):
    """Raised when a document cannot be placed on the board at all (no id)"""
    pass


def _record_id(raw: Mapping[str, Any]) -> str:
    for key in ("id", "_id"):
        value = raw.get(key)
        if value is not None and str(value) != "":
            return str(value)
    raise RecordNormalizationError("Document has no id")


def _record_kind(raw: Mapping[str, Any]) -> RecordKind:
    for key in ("kind", "type"):
        value = raw.get(key)
        if isinstance(value, RecordKind):
            return value
        if value in (RecordKind.LEAD.value, RecordKind.MERCHANT.value):
            return RecordKind(value)
    # Lead applications carry their answers in a formData block
    if isinstance(raw.get("formData"), dict):
        return RecordKind.LEAD
    return RecordKind.MERCHANT


def _record_stage(raw: Mapping[str, Any], record_id: str) -> PipelineStage:
    for key in STAGE_FIELDS:
        if key not in raw:
            continue
        stage = parse_stage(raw[key])
        if stage is not None:
            return stage
        logger.debug(f"Record {record_id}: unrecognised {key}={raw[key]!r}, trying next field")
    logger.debug(f"Record {record_id}: no valid stage, defaulting to {FIRST_STAGE.value}")
    return FIRST_STAGE


def _record_position(raw: Mapping[str, Any]) -> int:
    value = raw.get("position")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and (not math.isfinite(value) or not value.is_integer()):
        return 0
    value = int(value)
    return value if value >= 0 else 0


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _display_name(raw: Mapping[str, Any]) -> str:
    for key in NAME_FIELDS:
        value = _text(raw.get(key))
        if value:
            return value
    form_data = raw.get("formData")
    if isinstance(form_data, dict):
        for key in FORM_NAME_FIELDS:
            value = _text(form_data.get(key))
            if value:
                return value
    return _text(raw.get("email"))


def _display_phone(raw: Mapping[str, Any]) -> str:
    phone = _text(raw.get("phone"))
    if not phone and isinstance(raw.get("formData"), dict):
        phone = _text(raw["formData"].get("phone"))
    return phone


def _timestamp(raw: Mapping[str, Any], *keys: str):
    for key in keys:
        value = raw.get(key)
        if value is None or value == "":
            continue
        if hasattr(value, "isoformat"):
            return value.isoformat()
        return str(value)
    return None


def normalize_record(raw: Mapping[str, Any]) -> PipelineRecord:
    """
    Canonical PipelineRecord from a raw document of unknown shape.

    Pure and idempotent: normalize_record(normalize_record(x).model_dump())
    returns an equal record.

    Raises:
        RecordNormalizationError if the document has no identifier
    """
    if isinstance(raw, PipelineRecord):
        return raw

    record_id = _record_id(raw)

    return PipelineRecord(
        id=record_id,
        kind=_record_kind(raw),
        stage=_record_stage(raw, record_id),
        position=_record_position(raw),
        name=_display_name(raw),
        email=_text(raw.get("email")),
        phone=_display_phone(raw),
        created_at=_timestamp(raw, "created_at", "createdAt"),
        updated_at=_timestamp(raw, "updated_at", "updatedAt"),
    )


def normalize_records(raws: Iterable[Mapping[str, Any]]) -> List[PipelineRecord]:
    """
    Normalize a full snapshot.
    Documents without an id are skipped; for duplicate ids the last one wins.
    """
    by_id: Dict[str, PipelineRecord] = {}
    skipped = 0

    for raw in raws:
        try:
            record = normalize_record(raw)
        except RecordNormalizationError:
            skipped += 1
            continue
        by_id.pop(record.id, None)
        by_id[record.id] = record

    if skipped:
        logger.warning(f"[NORMALIZER] {skipped} document(s) without id skipped")

    return list(by_id.values())
