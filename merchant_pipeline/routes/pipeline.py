"""
Merchant Pipeline - Routes Pipeline (board Kanban)

GET  /pipeline/stages     configuration des colonnes
GET  /pipeline/board      cartes + column index (filtres search / dates)
POST /pipeline/drop       applique un drop (batch atomique)
POST /pipeline/repair     remet les positions à 0..n-1
GET  /pipeline/stats      compteurs dashboard
GET  /pipeline/activity   journal des changements de statut
WS   /pipeline/ws         push du column index à chaque changement
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, WebSocket, WebSocketDisconnect

from merchant_pipeline.models import STAGE_ORDER, STAGE_CONFIGS, DropTuple
from merchant_pipeline.routes.auth import get_websocket_user
from merchant_pipeline.services.activity_logger import get_activity_logs
from merchant_pipeline.services.board_filters import filter_index
from merchant_pipeline.services.column_index import build_column_index
from merchant_pipeline.services.normalizer import normalize_records
from merchant_pipeline.services.permissions import require_permission
from merchant_pipeline.services.position_repair import repair_positions
from merchant_pipeline.services.realtime import RealtimeSubscriptionAdapter
from merchant_pipeline.services.reconciler import Reconciler, ReconcileError, RecordNotFoundError
from merchant_pipeline.services.stats import compute_board_stats
from merchant_pipeline.services.store import BatchWriteError, RecordStore

logger = logging.getLogger("routes.pipeline")

router = APIRouter(prefix="/pipeline", tags=["Pipeline"])


# ==================== HELPERS ====================

def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_reconciler(request: Request) -> Reconciler:
    return request.app.state.reconciler


def get_collection(request: Request) -> str:
    return request.app.state.collection


async def _load_board(store: RecordStore, collection: str):
    records = normalize_records(await store.fetch_all(collection))
    return records, build_column_index(records)


# ==================== BOARD ====================

@router.get("/stages")
async def list_stages():
    """Colonnes du board, dans l'ordre"""
    return {
        "stages": [STAGE_CONFIGS[stage].model_dump(mode="json") for stage in STAGE_ORDER]
    }


@router.get("/board")
async def get_board(
    search: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    store: RecordStore = Depends(get_store),
    collection: str = Depends(get_collection),
    user: dict = Depends(require_permission("pipeline.view")),
):
    """
    Board complet: colonnes ordonnées + cartes normalisées.
    search filtre sur nom / email / téléphone, date_from / date_to sur created_at.
    """
    records, index = await _load_board(store, collection)
    visible = filter_index(index, records, search, date_from, date_to)
    shown = set(visible.record_ids())

    return {
        "columns": visible.to_dict(),
        "records": {r.id: r.model_dump(mode="json") for r in records if r.id in shown},
        "count": len(visible),
        "total": len(index),
    }


@router.post("/drop")
async def drop_card(
    drop: DropTuple,
    store: RecordStore = Depends(get_store),
    collection: str = Depends(get_collection),
    reconciler: Reconciler = Depends(get_reconciler),
    user: dict = Depends(require_permission("pipeline.reorder")),
):
    """
    Applique un drop contre l'état serveur actuel.
    Un échec du batch n'applique RIEN: le client revient à son dernier index.
    """
    records, index = await _load_board(store, collection)

    try:
        result = await reconciler.reconcile(drop, index, records=records, user=user)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ReconcileError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return {"success": True, **result.model_dump(mode="json")}


@router.post("/repair")
async def repair_board(
    store: RecordStore = Depends(get_store),
    collection: str = Depends(get_collection),
    user: dict = Depends(require_permission("pipeline.repair")),
):
    """Réparation manuelle des positions"""
    try:
        summary = await repair_positions(store, collection)
    except BatchWriteError as e:
        logger.error(f"Manual repair failed ({user.get('email')}): {e}")
        raise HTTPException(status_code=409, detail="Repair failed, please retry")
    return {"success": True, **summary}


@router.get("/stats")
async def get_stats(
    store: RecordStore = Depends(get_store),
    collection: str = Depends(get_collection),
    user: dict = Depends(require_permission("pipeline.view")),
):
    _, index = await _load_board(store, collection)
    return compute_board_stats(index)


@router.get("/activity")
async def get_activity(
    entity_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    skip: int = Query(0, ge=0),
    store: RecordStore = Depends(get_store),
    user: dict = Depends(require_permission("activity.view")),
):
    return await get_activity_logs(store, entity_id=entity_id, action="status_change", limit=limit, skip=skip)


# ==================== REALTIME ====================

@router.websocket("/ws")
async def board_updates(websocket: WebSocket, user: dict = Depends(get_websocket_user)):
    """
    Un abonnement par client connecté; le dernier snapshot gagne toujours.
    L'abonnement est libéré à la déconnexion, quoi qu'il arrive.
    """
    await websocket.accept()
    app = websocket.app
    adapter = RealtimeSubscriptionAdapter(app.state.store, app.state.collection)

    async with adapter:
        async def push():
            async for index in adapter.snapshots():
                await websocket.send_json({"version": adapter.version, "columns": index.to_dict()})

        pusher = asyncio.create_task(push())
        try:
            while True:
                # Nothing is expected from the client; this only detects the disconnect
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.info(f"Board WebSocket closed ({user.get('email')})")
        finally:
            pusher.cancel()
            await asyncio.gather(pusher, return_exceptions=True)
