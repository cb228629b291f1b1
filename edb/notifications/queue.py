import asyncio
import logging
from contextlib import suppress
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

JobHandler = Callable[[dict], Awaitable[None]]


class NotificationQueue:
    """File de tâches en mémoire consommée par un worker asyncio.

    Le worker est démarré et arrêté par le lifespan de l'application. Tant
    qu'il ne tourne pas, les tâches restent en attente et peuvent être
    traitées explicitement avec ``drain()``.
    """

    def __init__(self):
        self._handlers: Dict[str, JobHandler] = {}
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._backlog: List[Tuple[str, dict]] = []

    def handler(self, name: str):
        def decorator(func: JobHandler) -> JobHandler:
            self._handlers[name] = func
            return func
        return decorator

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        if self.running:
            return self._queue.qsize()
        return len(self._backlog)

    async def enqueue(self, name: str, payload: dict):
        if name not in self._handlers:
            raise ValueError(f"Aucun handler pour la tâche '{name}'")

        if self.running:
            await self._queue.put((name, payload))
        else:
            self._backlog.append((name, payload))
        logger.debug(f"Tâche '{name}' ajoutée à la file : {payload}")

    async def _run_job(self, name: str, payload: dict):
        try:
            await self._handlers[name](payload)
        except Exception:
            logger.exception(f"❌ Échec de la tâche '{name}' ({payload})")

    async def _work(self):
        while True:
            name, payload = await self._queue.get()
            try:
                await self._run_job(name, payload)
            finally:
                self._queue.task_done()

    def start(self):
        if self.running:
            return
        self._queue = asyncio.Queue()
        for job in self._backlog:
            self._queue.put_nowait(job)
        self._backlog.clear()
        self._worker = asyncio.create_task(self._work())
        logger.info("🚀 Worker de notifications démarré")

    async def stop(self):
        if not self._worker:
            return
        self._worker.cancel()
        with suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None

        # Les tâches non traitées sont conservées pour un prochain démarrage
        while not self._queue.empty():
            self._backlog.append(self._queue.get_nowait())
        logger.info("🛑 Worker de notifications arrêté")

    async def drain(self):
        """Attend que toutes les tâches en attente soient traitées."""
        if self.running:
            await self._queue.join()
            return
        while self._backlog:
            name, payload = self._backlog.pop(0)
            await self._run_job(name, payload)

    def clear(self):
        self._backlog.clear()


notification_queue = NotificationQueue()
