"""
Service de journalisation des activités du pipeline
"""

import uuid

from merchant_pipeline.config import now_iso
from merchant_pipeline.services.store import RecordStore

SYSTEM_USER = {"id": "system", "email": "system", "nom": "System"}


async def log_activity(
    store: RecordStore,
    action: str,
    entity_id: str,
    user: dict = None,
    description: str = "",
    details: dict = None,
):
    """
    Enregistre une activité dans le journal

    Actions: status_change, reorder, position_repair
    """
    user = user or SYSTEM_USER
    log_entry = {
        "id": str(uuid.uuid4()),
        "type": action,
        "action": action,
        "entity_type": "merchant",
        "entity_id": entity_id,
        "description": description,
        "performed_by": user.get("email", "system"),
        "user_id": user.get("id", "system"),
        "details": details or {},
        "created_at": now_iso(),
    }

    await store.insert_activity(log_entry)
    return log_entry


async def get_activity_logs(
    store: RecordStore,
    entity_id: str = None,
    action: str = None,
    limit: int = 100,
    skip: int = 0,
):
    """
    Récupère les logs d'activité avec filtres optionnels
    """
    query = {}

    if entity_id:
        query["entity_id"] = entity_id
    if action:
        query["action"] = action

    logs, total = await store.list_activity(query, limit=limit, skip=skip)

    return {"logs": logs, "total": total, "limit": limit, "skip": skip}
