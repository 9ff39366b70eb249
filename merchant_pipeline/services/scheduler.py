"""
Scheduler pour les tâches automatiques du pipeline
- Réparation des positions (toutes les REPAIR_INTERVAL_MINUTES minutes)
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from merchant_pipeline.config import PIPELINE_COLLECTION, REPAIR_INTERVAL_MINUTES, SCHEDULER_TIMEZONE
from merchant_pipeline.services.position_repair import repair_positions
from merchant_pipeline.services.store import BatchWriteError, RecordStore

logger = logging.getLogger("scheduler")


class TaskScheduler:
    """Gestionnaire de tâches planifiées"""

    def __init__(
        self,
        store: RecordStore,
        collection: str = PIPELINE_COLLECTION,
        interval_minutes: int = REPAIR_INTERVAL_MINUTES,
    ):
        self.store = store
        self.collection = collection
        self.interval_minutes = interval_minutes
        self.scheduler: Optional[AsyncIOScheduler] = None

    def start(self):
        """Démarre le scheduler (rien si l'intervalle vaut 0)"""
        if self.interval_minutes <= 0:
            logger.info("Position repair job disabled")
            return

        # Created here so it binds to the running event loop
        self.scheduler = AsyncIOScheduler(timezone=SCHEDULER_TIMEZONE)
        self.scheduler.add_job(
            self.run_position_repair,
            IntervalTrigger(minutes=self.interval_minutes),
            id="position_repair",
            name="Réparation des positions",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.start()
        logger.info(f"Scheduler démarré (position repair every {self.interval_minutes} min)")

    def stop(self):
        """Arrête le scheduler"""
        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler arrêté")

    # ==================== TÂCHES PLANIFIÉES ====================

    async def run_position_repair(self):
        """Répare les positions du board; un échec attend simplement le prochain passage"""
        try:
            return await repair_positions(self.store, self.collection)
        except BatchWriteError as e:
            logger.error(f"[REPAIR] {self.collection}: batch failed, will retry next run: {e}")
            return None
