"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Merchant Pipeline - Stages                                                  ║
║                                                                              ║
║  Ordre FIXE du pipeline:                                                     ║
║    lead → phone → offer → underwriting → documents → approved                ║
║                                                                              ║
║  Les stages sont de la configuration statique, jamais persistés.             ║
║  Toute valeur inconnue retombe sur le premier stage (lead).                  ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from enum import Enum
from typing import Dict, Optional, Tuple
from pydantic import BaseModel, ConfigDict


class PipelineStage(str, Enum):
    """Stages du pipeline, dans l'ordre d'affichage"""
    LEAD = "lead"
    PHONE = "phone"
    OFFER = "offer"
    UNDERWRITING = "underwriting"
    DOCUMENTS = "documents"
    APPROVED = "approved"


STAGE_ORDER: Tuple[PipelineStage, ...] = tuple(PipelineStage)
FIRST_STAGE = STAGE_ORDER[0]

# Pour validation
VALID_STAGES = [s.value for s in PipelineStage]


class StageConfig(BaseModel):
    """Display configuration for one board column"""
    model_config = ConfigDict(frozen=True)

    stage: PipelineStage
    label: str
    color: str
    progress: int  # % shown on the card progress bar


STAGE_CONFIGS: Dict[PipelineStage, StageConfig] = {
    PipelineStage.LEAD: StageConfig(stage=PipelineStage.LEAD, label="Leads", color="#2196f3", progress=17),
    PipelineStage.PHONE: StageConfig(stage=PipelineStage.PHONE, label="Phone Calls", color="#9c27b0", progress=33),
    PipelineStage.OFFER: StageConfig(stage=PipelineStage.OFFER, label="Offer Sent", color="#ff9800", progress=50),
    PipelineStage.UNDERWRITING: StageConfig(
        stage=PipelineStage.UNDERWRITING, label="Underwriting", color="#f44336", progress=67
    ),
    PipelineStage.DOCUMENTS: StageConfig(stage=PipelineStage.DOCUMENTS, label="Documents", color="#3f51b5", progress=83),
    PipelineStage.APPROVED: StageConfig(stage=PipelineStage.APPROVED, label="Approved", color="#4caf50", progress=100),
}

# Dashboard groupings
ACTIVE_LEAD_STAGES = (PipelineStage.LEAD, PipelineStage.PHONE, PipelineStage.OFFER)
PENDING_APPLICATION_STAGES = (PipelineStage.UNDERWRITING, PipelineStage.DOCUMENTS)


def parse_stage(value) -> Optional[PipelineStage]:
    """
    Exact match against the canonical stage values.
    Returns None for anything else (wrong case included).
    """
    if isinstance(value, PipelineStage):
        return value
    if not isinstance(value, str):
        return None
    try:
        return PipelineStage(value)
    except ValueError:
        return None


def stage_label(stage: PipelineStage) -> str:
    return STAGE_CONFIGS[stage].label


def stage_color(stage: PipelineStage) -> str:
    return STAGE_CONFIGS[stage].color
