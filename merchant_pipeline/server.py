"""
Merchant Pipeline - API Backend
Board Kanban leads / marchands

Démarre avec:
    uvicorn merchant_pipeline.server:app --host 0.0.0.0 --port 8001 --reload
"""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from merchant_pipeline import __version__
from merchant_pipeline.config import CORS_ORIGINS, LOG_LEVEL, PIPELINE_COLLECTION, client, db
from merchant_pipeline.services.notifier import StatusChangeNotifier
from merchant_pipeline.services.reconciler import Reconciler
from merchant_pipeline.services.scheduler import TaskScheduler
from merchant_pipeline.services.store import MotorRecordStore, RecordStore

# Configuration logging
logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("merchant_pipeline")


def create_app(
    store: Optional[RecordStore] = None,
    notifier: Optional[StatusChangeNotifier] = None,
    collection: str = PIPELINE_COLLECTION,
    start_scheduler: bool = True,
    auth_db=None,
) -> FastAPI:
    """
    Build the API. Without an explicit store the app talks to MongoDB
    (see config.py); tests pass an InMemoryRecordStore. Sessions and users
    are read from `auth_db` (defaults to config.db).
    """
    app = FastAPI(
        title="Merchant Pipeline",
        description="Board Kanban du pipeline leads / marchands",
        version=__version__,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    store = store or MotorRecordStore(db, client)
    app.state.store = store
    app.state.collection = collection
    app.state.auth_db = db if auth_db is None else auth_db
    # /drop answers as soon as the batch is committed; the notification follows
    app.state.reconciler = Reconciler(store, collection, notifier=notifier, background_notifications=True)
    app.state.scheduler = TaskScheduler(store, collection)

    # ==================== ROUTES ====================

    from merchant_pipeline.routes import pipeline

    app.include_router(pipeline.router, prefix="/api")

    @app.get("/")
    async def root():
        return {
            "name": "Merchant Pipeline API",
            "version": __version__,
            "status": "running",
            "docs": "/docs"
        }

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "collection": collection}

    # ==================== STARTUP / SHUTDOWN ====================

    @app.on_event("startup")
    async def startup():
        logger.info(f"Merchant Pipeline v{__version__} démarré (collection={collection})")

        if isinstance(store, MotorRecordStore):
            await store.db[collection].create_index("id")
            await store.db[collection].create_index([("stage", 1), ("position", 1)])
            await store.db.activity_logs.create_index("entity_id")
            await store.db.activity_logs.create_index("created_at")
            await app.state.auth_db.sessions.create_index("token")
            logger.info("Index MongoDB créés")

        if start_scheduler:
            app.state.scheduler.start()

    @app.on_event("shutdown")
    async def shutdown():
        app.state.scheduler.stop()
        await app.state.reconciler.drain()
        if isinstance(store, MotorRecordStore):
            store.client.close()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
