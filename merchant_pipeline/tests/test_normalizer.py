"""
Merchant Pipeline — Record Normalizer Tests
Tests: stage fallback, legacy field names, position sanitizing, snapshot dedupe.
Run: pytest merchant_pipeline/tests/test_normalizer.py -v
"""

import pytest

from merchant_pipeline.models import PipelineRecord, PipelineStage, RecordKind
from merchant_pipeline.services.normalizer import (
    RecordNormalizationError,
    normalize_record,
    normalize_records,
)


# ═══════════════════════════════════════════════════════════════
# 1. STAGE
# ═══════════════════════════════════════════════════════════════

class TestStage:
    def test_unknown_stage_falls_back_to_lead_at_zero(self):
        """Unrecognised stage and no position -> first stage, position 0"""
        record = normalize_record({"id": "m1", "stage": "foobar"})
        assert record.stage == PipelineStage.LEAD
        assert record.position == 0

    def test_missing_stage(self):
        assert normalize_record({"id": "m1"}).stage == PipelineStage.LEAD

    def test_canonical_stage_kept(self):
        assert normalize_record({"id": "m1", "stage": "underwriting"}).stage == PipelineStage.UNDERWRITING

    def test_wrong_case_is_not_a_stage(self):
        assert normalize_record({"id": "m1", "stage": "Phone"}).stage == PipelineStage.LEAD

    def test_legacy_field_order(self):
        """stage > pipelineStatus > pipeline_status > status"""
        record = normalize_record({"id": "m1", "pipelineStatus": "offer", "status": "approved"})
        assert record.stage == PipelineStage.OFFER

    def test_invalid_first_field_uses_next(self):
        record = normalize_record({"id": "m1", "stage": "foobar", "status": "documents"})
        assert record.stage == PipelineStage.DOCUMENTS

    def test_non_string_stage(self):
        assert normalize_record({"id": "m1", "stage": 3}).stage == PipelineStage.LEAD


# ═══════════════════════════════════════════════════════════════
# 2. POSITION
# ═══════════════════════════════════════════════════════════════

class TestPosition:
    @pytest.mark.parametrize("value", [None, -1, "2", 1.5, float("nan"), True, [1]])
    def test_invalid_positions_become_zero(self, value):
        assert normalize_record({"id": "m1", "position": value}).position == 0

    def test_integral_float_accepted(self):
        assert normalize_record({"id": "m1", "position": 4.0}).position == 4

    def test_int_kept(self):
        assert normalize_record({"id": "m1", "position": 7}).position == 7


# ═══════════════════════════════════════════════════════════════
# 3. IDENTITY / DISPLAY FIELDS
# ═══════════════════════════════════════════════════════════════

class TestFields:
    def test_mongo_id_used_when_no_id(self):
        assert normalize_record({"_id": "abc", "stage": "phone"}).id == "abc"

    def test_no_id_raises(self):
        with pytest.raises(RecordNormalizationError):
            normalize_record({"stage": "phone"})

    def test_lead_application_shape(self):
        record = normalize_record({
            "_id": "l1",
            "status": "phone",
            "formData": {"businessName": "  Acme Bakery ", "phone": "555-0100"},
            "createdAt": "2026-01-05T10:00:00+00:00",
        })
        assert record.kind == RecordKind.LEAD
        assert record.name == "Acme Bakery"
        assert record.phone == "555-0100"
        assert record.created_at == "2026-01-05T10:00:00+00:00"

    def test_merchant_shape(self):
        record = normalize_record({
            "id": "m1",
            "businessName": "Corner Shop",
            "email": "owner@corner.shop",
            "updated_at": "2026-02-01T00:00:00+00:00",
        })
        assert record.kind == RecordKind.MERCHANT
        assert record.name == "Corner Shop"
        assert record.updated_at == "2026-02-01T00:00:00+00:00"

    def test_explicit_kind_wins(self):
        record = normalize_record({"id": "m1", "type": "merchant", "formData": {}})
        assert record.kind == RecordKind.MERCHANT

    def test_name_falls_back_to_email(self):
        assert normalize_record({"id": "m1", "email": "a@b.com"}).name == "a@b.com"

    def test_idempotent(self):
        raw = {"_id": "l1", "pipeline_status": "offer", "position": 3, "formData": {"dba": "Shop"}}
        once = normalize_record(raw)
        twice = normalize_record(once.model_dump(mode="json"))
        assert once == twice

    def test_record_passes_through(self):
        record = PipelineRecord(id="m1", stage=PipelineStage.PHONE, position=2)
        assert normalize_record(record) is record


# ═══════════════════════════════════════════════════════════════
# 4. SNAPSHOT
# ═══════════════════════════════════════════════════════════════

class TestSnapshot:
    def test_documents_without_id_skipped(self):
        records = normalize_records([{"id": "a"}, {"stage": "phone"}, {"id": "b"}])
        assert [r.id for r in records] == ["a", "b"]

    def test_duplicate_id_last_wins(self):
        records = normalize_records([
            {"id": "a", "stage": "lead"},
            {"id": "b"},
            {"id": "a", "stage": "approved"},
        ])
        assert len(records) == 2
        by_id = {r.id: r for r in records}
        assert by_id["a"].stage == PipelineStage.APPROVED

    def test_empty(self):
        assert normalize_records([]) == []
