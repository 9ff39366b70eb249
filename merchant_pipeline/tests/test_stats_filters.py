"""
Merchant Pipeline — Board stats & filters
Run: pytest merchant_pipeline/tests/test_stats_filters.py -v
"""

from datetime import datetime, timezone

from merchant_pipeline.models import ColumnIndex, PipelineRecord, PipelineStage
from merchant_pipeline.services.board_filters import filter_index, record_matches
from merchant_pipeline.services.column_index import build_column_index
from merchant_pipeline.services.stats import compute_board_stats


def rec(record_id, stage="lead", position=0, **fields):
    return PipelineRecord(id=record_id, stage=PipelineStage(stage), position=position, **fields)


RECORDS = [
    rec("a", "lead", 0, name="Alpha Cafe", email="alpha@cafe.io", created_at="2026-01-10T00:00:00+00:00"),
    rec("b", "phone", 0, name="Bravo", phone="555-0199", created_at="2026-02-10T00:00:00+00:00"),
    rec("c", "underwriting", 0, name="Charlie", created_at="2026-03-10T00:00:00+00:00"),
    rec("d", "documents", 0, name="Delta"),
    rec("e", "approved", 0, name="Echo Alpha", created_at="2026-03-15T00:00:00+00:00"),
    rec("f", "lead", 1, name="Foxtrot", created_at="2026-03-20T00:00:00+00:00"),
]


class TestStats:
    def test_groups(self):
        stats = compute_board_stats(build_column_index(RECORDS))
        assert stats["total"] == 6
        assert stats["by_stage"]["lead"] == 2
        assert stats["active_leads"] == 3
        assert stats["pending_applications"] == 2
        assert stats["approved_merchants"] == 1

    def test_empty_board(self):
        stats = compute_board_stats(ColumnIndex.empty())
        assert stats["total"] == 0
        assert set(stats["by_stage"]) == {s.value for s in PipelineStage}


class TestFilters:
    def test_search_is_case_insensitive(self):
        index = filter_index(build_column_index(RECORDS), RECORDS, search="ALPHA")
        assert sorted(index.record_ids()) == ["a", "e"]

    def test_search_matches_phone_and_email(self):
        assert record_matches(RECORDS[1], search="0199")
        assert record_matches(RECORDS[0], search="cafe.io")

    def test_date_range(self):
        index = filter_index(
            build_column_index(RECORDS),
            RECORDS,
            date_from=datetime(2026, 3, 1, tzinfo=timezone.utc),
            date_to=datetime(2026, 3, 31, tzinfo=timezone.utc),
        )
        assert sorted(index.record_ids()) == ["c", "e", "f"]

    def test_record_without_date_excluded_from_range(self):
        assert not record_matches(RECORDS[3], date_from=datetime(2020, 1, 1, tzinfo=timezone.utc))

    def test_naive_bound_treated_as_utc(self):
        assert record_matches(RECORDS[0], date_to=datetime(2026, 1, 31))

    def test_column_order_preserved(self):
        index = build_column_index(RECORDS)
        filtered = filter_index(index, RECORDS, search="o")
        lead = [rid for rid in index.column(PipelineStage.LEAD) if rid in filtered.column(PipelineStage.LEAD)]
        assert list(filtered.column(PipelineStage.LEAD)) == lead

    def test_no_filter_returns_same_index(self):
        index = build_column_index(RECORDS)
        assert filter_index(index, RECORDS) is index
