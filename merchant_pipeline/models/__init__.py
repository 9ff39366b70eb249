"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Merchant Pipeline - Models Package                                          ║
║                                                                              ║
║  Exports tous les modèles pour import facile                                 ║
║  from merchant_pipeline.models import PipelineStage, ColumnIndex, etc.       ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

# Stages
from .stage import (
    PipelineStage,
    StageConfig,
    STAGE_ORDER,
    STAGE_CONFIGS,
    FIRST_STAGE,
    VALID_STAGES,
    ACTIVE_LEAD_STAGES,
    PENDING_APPLICATION_STAGES,
    parse_stage,
    stage_label,
    stage_color,
)

# Records
from .record import (
    RecordKind,
    PipelineRecord,
    RecordUpdate,
)

# Board
from .board import (
    ColumnIndex,
    DropTarget,
    DragState,
    DragSession,
    DropTuple,
    OutcomeType,
    DragOutcome,
    ReconcileResult,
)
