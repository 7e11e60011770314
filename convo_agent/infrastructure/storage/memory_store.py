"""进程内会话存储。

状态全部驻留在内存，进程重启即丢失。排他范围分三层：

- 结构锁：保护 user_id -> 条目 的增删，只包住字典操作，从不跨 await 持有。
- 条目锁：位于 ConversationMemory 内部，保护单个用户历史的读写。
- 回合锁：每个用户一把 asyncio.Lock，由编排层在整轮对话期间持有，
  保证同一用户的回合串行执行；不同用户互不争用。回合锁与记忆分开保存，
  clear/clear_all 不会让进行中的回合失去串行保证；clear_all 只回收空闲的锁，
  因此锁表大小以 clear_all 之间出现过的用户数为界。
"""

import asyncio
import threading
from typing import Dict, List, Optional

from convo_agent.config.settings import settings
from convo_agent.domain.conversation import ConversationMemory, ConversationStore
from convo_agent.domain.models import Message


class InMemoryConversationStore(ConversationStore):
    def __init__(self, max_history: Optional[int] = None):
        self._max_history = settings.max_history if max_history is None else max_history
        if self._max_history < 1:
            raise ValueError("max_history must be >= 1")
        self._memories: Dict[str, ConversationMemory] = {}
        self._turn_locks: Dict[str, asyncio.Lock] = {}
        self._structure_lock = threading.Lock()

    @property
    def max_history(self) -> int:
        return self._max_history

    def get_or_create(self, user_id: str) -> ConversationMemory:
        """返回用户的记忆，首次接触时惰性创建。

        并发首次接触只会创建一个记忆对象，所有调用方拿到同一个实例。
        """
        memory = self._memories.get(user_id)
        if memory is not None:
            return memory
        with self._structure_lock:
            memory = self._memories.get(user_id)
            if memory is None:
                memory = ConversationMemory(self._max_history)
                self._memories[user_id] = memory
            return memory

    def append(self, user_id: str, message: Message) -> None:
        self.get_or_create(user_id).add_message(message)

    def clear(self, user_id: str) -> None:
        """清空某个用户的历史；用户不存在时什么都不做。"""
        memory = self._memories.get(user_id)
        if memory is not None:
            memory.clear()

    def clear_all(self) -> None:
        """移除全部记忆，并回收未被持有的回合锁。

        正在进行或排队中的回合持有的锁会保留，保证它们仍然串行。
        """
        with self._structure_lock:
            self._memories.clear()
            for user_id in [uid for uid, lock in self._turn_locks.items() if not lock.locked()]:
                del self._turn_locks[user_id]

    def snapshot(self, user_id: str) -> Optional[List[Message]]:
        memory = self._memories.get(user_id)
        if memory is None:
            return None
        return memory.get_messages()

    def active_count(self) -> int:
        with self._structure_lock:
            return len(self._memories)

    def turn_lock(self, user_id: str) -> asyncio.Lock:
        lock = self._turn_locks.get(user_id)
        if lock is not None:
            return lock
        with self._structure_lock:
            return self._turn_locks.setdefault(user_id, asyncio.Lock())
