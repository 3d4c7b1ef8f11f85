import asyncio
import logging

from tracker.notifications.dispatcher import NotificationDispatcher
from tracker.schemas import NotificationMessage

logger = logging.getLogger(__name__)


class NotificationWorker:
    """
    Bounded hand-off queue drained by one background task.

    Producers call ``submit`` and move on; the worker delivers through the
    dispatcher. A full queue drops the notification.
    """

    def __init__(self, dispatcher: NotificationDispatcher, maxsize: int = 1000):
        self.dispatcher = dispatcher
        self._queue: asyncio.Queue[tuple[str, NotificationMessage]] = asyncio.Queue(maxsize=maxsize)
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="notification-worker")
        logger.info("Notification worker started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Notification worker stopped (pending=%d)", self._queue.qsize())

    def submit(self, email: str, notification: NotificationMessage) -> bool:
        try:
            self._queue.put_nowait((email, notification))
            return True
        except asyncio.QueueFull:
            logger.warning("Notification queue full, dropping '%s' for %s", notification.title, email)
            return False

    async def drain(self) -> None:
        """Wait until everything submitted so far has been delivered."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            email, notification = await self._queue.get()
            try:
                self.dispatcher.notify_user(email, notification)
            except Exception:
                logger.exception("Queued notification failed for %s", email)
            finally:
                self._queue.task_done()
