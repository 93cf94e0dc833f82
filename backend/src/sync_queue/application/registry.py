import logging
from collections.abc import Callable
from uuid import UUID

from sync_queue.application.services import OfflineMutationQueue

logger = logging.getLogger(__name__)


class QueueRegistry:
    """Owns the single offline queue of the signed-in identity."""

    def __init__(self, factory: Callable[[UUID], OfflineMutationQueue]):
        self._factory = factory
        self._queue: OfflineMutationQueue | None = None

    @property
    def current(self) -> OfflineMutationQueue | None:
        return self._queue

    def get(self, user_id: UUID) -> OfflineMutationQueue:
        if self._queue is not None and self._queue.user_id == user_id:
            return self._queue
        if self._queue is not None:
            logger.info("Switching sync queue from user %s to %s", self._queue.user_id, user_id)
            self._queue.destroy()
        self._queue = self._factory(user_id)
        return self._queue

    def release(self) -> None:
        if self._queue is not None:
            self._queue.destroy()
            self._queue = None
