import logging
from collections.abc import Callable
from uuid import UUID

from collaboration.application.provider import NoteSyncProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Holds at most one live sync provider per note."""

    def __init__(self, factory: Callable[[UUID], NoteSyncProvider]):
        self._factory = factory
        self._providers: dict[UUID, NoteSyncProvider] = {}

    def get(self, note_id: UUID) -> NoteSyncProvider | None:
        return self._providers.get(note_id)

    async def open(self, note_id: UUID) -> NoteSyncProvider:
        existing = self._providers.get(note_id)
        if existing is not None:
            return existing

        provider = self._factory(note_id)
        self._providers[note_id] = provider
        try:
            await provider.connect()
        except Exception:
            del self._providers[note_id]
            await provider.destroy()
            raise
        return provider

    async def close(self, note_id: UUID) -> None:
        provider = self._providers.pop(note_id, None)
        if provider is not None:
            await provider.destroy()

    async def close_all(self) -> None:
        for note_id in list(self._providers):
            await self.close(note_id)

    def __len__(self) -> int:
        return len(self._providers)
