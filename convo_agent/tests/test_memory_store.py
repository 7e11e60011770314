import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from convo_agent.domain.models import Message
from convo_agent.infrastructure.storage.memory_store import InMemoryConversationStore


def test_store_append_and_snapshot():
    store = InMemoryConversationStore(max_history=2)
    assert store.snapshot("u1") is None
    store.append("u1", Message.user("a"))
    store.append("u1", Message.assistant("b"))
    store.append("u1", Message.user("c"))
    assert store.snapshot("u1") == [Message.assistant("b"), Message.user("c")]
    assert store.active_count() == 1


def test_snapshot_is_a_copy():
    store = InMemoryConversationStore(max_history=3)
    store.append("u1", Message.user("a"))
    snap = store.snapshot("u1")
    snap.append(Message.user("b"))
    assert store.snapshot("u1") == [Message.user("a")]


def test_clear_unknown_user_is_noop():
    store = InMemoryConversationStore(max_history=3)
    store.clear("nobody")
    assert store.active_count() == 0
    assert store.snapshot("nobody") is None


def test_clear_keeps_entry_and_clear_all_removes():
    store = InMemoryConversationStore(max_history=3)
    store.append("u1", Message.user("a"))
    store.append("u2", Message.user("b"))
    store.clear("u1")
    assert store.snapshot("u1") == []
    assert store.active_count() == 2
    store.clear_all()
    assert store.active_count() == 0
    assert store.snapshot("u2") is None


def test_get_or_create_concurrent_threads_share_one_memory():
    store = InMemoryConversationStore(max_history=3)
    barrier = threading.Barrier(16)

    def _create(_):
        barrier.wait()
        return store.get_or_create("fresh")

    with ThreadPoolExecutor(max_workers=16) as pool:
        memories = list(pool.map(_create, range(16)))

    assert all(m is memories[0] for m in memories)
    assert store.active_count() == 1


@pytest.mark.asyncio
async def test_get_or_create_concurrent_tasks_share_one_memory():
    store = InMemoryConversationStore(max_history=3)

    async def _create():
        await asyncio.sleep(0)
        return store.get_or_create("fresh")

    memories = await asyncio.gather(*(_create() for _ in range(20)))
    assert len({id(m) for m in memories}) == 1


def test_turn_lock_is_per_user():
    store = InMemoryConversationStore(max_history=3)
    lock_a = store.turn_lock("a")
    assert store.turn_lock("a") is lock_a
    assert store.turn_lock("b") is not lock_a


@pytest.mark.asyncio
async def test_clear_all_keeps_held_turn_locks_and_drops_idle_ones():
    store = InMemoryConversationStore(max_history=3)
    busy = store.turn_lock("busy")
    idle = store.turn_lock("idle")
    async with busy:
        store.clear_all()
        assert store.turn_lock("busy") is busy
        assert store.turn_lock("idle") is not idle
    store.clear_all()
    assert store.turn_lock("busy") is not busy


def test_store_rejects_invalid_capacity():
    with pytest.raises(ValueError):
        InMemoryConversationStore(max_history=0)
