"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Merchant Pipeline - Pipeline Record                                         ║
║                                                                              ║
║  Forme canonique d'un lead / marchand sur le board.                          ║
║  - stage TOUJOURS membre de PipelineStage                                    ║
║  - position TOUJOURS entier >= 0                                             ║
║  - champs d'affichage en lecture seule pour le pipeline                      ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field

from .stage import PipelineStage, FIRST_STAGE


class RecordKind(str, Enum):
    """Tag of the record variant"""
    LEAD = "lead"
    MERCHANT = "merchant"


class PipelineRecord(BaseModel):
    """A lead or merchant tracked through the sales pipeline"""
    model_config = ConfigDict(frozen=True)

    id: str
    kind: RecordKind = RecordKind.MERCHANT
    stage: PipelineStage = FIRST_STAGE
    position: int = Field(default=0, ge=0)

    # Display (read-only)
    name: str = ""
    email: str = ""
    phone: str = ""

    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class RecordUpdate(BaseModel):
    """One (documentId, partialFields) pair of an atomic batch"""
    record_id: str
    fields: Dict[str, Any]

    @property
    def stage(self) -> Optional[str]:
        return self.fields.get("stage")

    @property
    def position(self) -> Optional[int]:
        return self.fields.get("position")
