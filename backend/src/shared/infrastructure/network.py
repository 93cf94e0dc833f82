"""Connectivity state consumed by the sync provider and the offline queue."""

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

from shared.config import settings
from shared.infrastructure.api_client import RemoteBackendClient

logger = logging.getLogger(__name__)

OnlineCallback = Callable[[bool], None]


class NetworkMonitor(Protocol):
    def is_online(self) -> bool: ...

    def on_change(self, callback: OnlineCallback) -> Callable[[], None]: ...


class ManualNetworkMonitor:
    """Connectivity flag flipped by the host platform.

    Subscribers are only notified on actual transitions.
    """

    def __init__(self, online: bool = True):
        self._online = online
        self._callbacks: list[OnlineCallback] = []

    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        logger.info("Network went %s", "online" if online else "offline")
        for callback in list(self._callbacks):
            callback(online)

    def on_change(self, callback: OnlineCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe


class HealthCheckNetworkMonitor(ManualNetworkMonitor):
    """Derives connectivity from periodic ``GET /health`` probes."""

    def __init__(
        self,
        remote: RemoteBackendClient,
        interval: float | None = None,
        online: bool = False,
    ):
        super().__init__(online)
        self._remote = remote
        self._interval = interval if interval is not None else settings.HEALTH_CHECK_INTERVAL_SECONDS
        self._task: asyncio.Task | None = None

    async def check(self) -> bool:
        online = await self._remote.health()
        self.set_online(online)
        return online

    async def start(self) -> None:
        if self._task is not None:
            return
        await self.check()
        self._task = asyncio.create_task(self._poll())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.check()
