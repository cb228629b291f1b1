import asyncio
import logging
from typing import Optional

from edb.coaching.services import CoachingService
from edb.config import settings
from edb.db.session import AsyncSessionLocal
from edb.subscriptions.services import SubscriptionService

logger = logging.getLogger(__name__)


async def _auto_renew(db):
    return len(await SubscriptionService(db).auto_renew_subscriptions())


JOBS = [
    ("auto_renew_subscriptions", _auto_renew),
    ("expire_subscriptions", lambda db: SubscriptionService(db).expire_subscriptions()),
    ("subscription_expiry_warnings", lambda db: SubscriptionService(db).send_expiry_warnings()),
    ("expire_coaching_sessions", lambda db: CoachingService(db).expire_sessions()),
    ("coaching_expiry_reminders", lambda db: CoachingService(db).send_expiry_reminders()),
]


async def run_scheduled_jobs() -> dict:
    """Exécute une fois toutes les tâches de maintenance, chacune dans sa propre session."""
    results = {}
    for name, job in JOBS:
        async with AsyncSessionLocal() as db:
            try:
                results[name] = await job(db)
            except Exception:
                await db.rollback()
                logger.exception(f"❌ Tâche planifiée '{name}' en échec")
                results[name] = None
    logger.info(f"🕒 Tâches planifiées exécutées : {results}")
    return results


class Scheduler:
    """Lance périodiquement ``run_scheduled_jobs``."""

    def __init__(self, interval_seconds: Optional[int] = None):
        self.interval = interval_seconds or settings.SCHEDULER_INTERVAL_SECONDS
        self.running = False
        self.task: Optional[asyncio.Task] = None

    async def start(self):
        if self.running:
            logger.warning("Planificateur déjà démarré")
            return
        self.running = True
        self.task = asyncio.create_task(self._run())
        logger.info(f"🕒 Planificateur démarré (intervalle {self.interval}s)")

    async def stop(self):
        self.running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            self.task = None
        logger.info("Planificateur arrêté")

    async def _run(self):
        while self.running:
            try:
                await run_scheduled_jobs()
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Erreur dans la boucle du planificateur")
                await asyncio.sleep(60)


scheduler = Scheduler()
