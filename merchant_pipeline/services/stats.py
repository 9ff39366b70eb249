"""
Merchant Pipeline - Board statistics (dashboard cards)
"""

from typing import Dict

from merchant_pipeline.models import (
    ACTIVE_LEAD_STAGES,
    PENDING_APPLICATION_STAGES,
    STAGE_ORDER,
    ColumnIndex,
    PipelineStage,
)


def compute_board_stats(index: ColumnIndex) -> Dict:
    """
    Counts per stage plus the dashboard groups:
    - active_leads: lead, phone, offer
    - pending_applications: underwriting, documents
    - approved_merchants: approved
    """
    by_stage = {stage.value: len(index.column(stage)) for stage in STAGE_ORDER}

    return {
        "by_stage": by_stage,
        "total": sum(by_stage.values()),
        "active_leads": sum(by_stage[s.value] for s in ACTIVE_LEAD_STAGES),
        "pending_applications": sum(by_stage[s.value] for s in PENDING_APPLICATION_STAGES),
        "approved_merchants": by_stage[PipelineStage.APPROVED.value],
    }
