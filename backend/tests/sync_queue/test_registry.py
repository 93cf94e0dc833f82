from uuid import uuid4

from shared.infrastructure.network import ManualNetworkMonitor
from sync_queue.application.registry import QueueRegistry
from sync_queue.application.services import OfflineMutationQueue
from sync_queue.domain.entities import EntityType, Operation


def make_registry(local_session_factory, remote, network):
    return QueueRegistry(
        lambda user_id: OfflineMutationQueue(
            user_id,
            session_factory=local_session_factory,
            remote=remote,
            network=network,
        )
    )


def test_same_identity_gets_same_queue(local_session_factory, remote):
    registry = make_registry(local_session_factory, remote, ManualNetworkMonitor())
    user = uuid4()
    assert registry.get(user) is registry.get(user)
    assert registry.current.user_id == user


async def test_switching_identity_detaches_previous_queue(local_session_factory, remote):
    network = ManualNetworkMonitor(online=False)
    registry = make_registry(local_session_factory, remote, network)
    first = registry.get(uuid4())
    await first.enqueue(EntityType.FOLDER, uuid4(), Operation.CREATE, {"name": "Kept"})

    second = registry.get(uuid4())
    assert second is not first
    assert registry.current is second

    # The detached queue no longer drains, but its items are still stored.
    network.set_online(True)
    await first.wait_for_drain()
    await second.wait_for_drain()
    assert await first.get_queue_length() == 1


def test_release_forgets_queue(local_session_factory, remote):
    registry = make_registry(local_session_factory, remote, ManualNetworkMonitor())
    registry.get(uuid4())
    registry.release()
    assert registry.current is None
