import asyncio
import threading
from collections import deque
from typing import Deque, List, Optional, Protocol

from .models import Message


class ConversationMemory:
    """单个用户的有界对话历史。

    超出 max_history 时按 FIFO 淘汰最早的消息，不区分角色；
    system prompt 不存放在这里，由编排层每轮重新拼接。
    插入与淘汰在同一把条目锁内完成，外部不会观察到超长的历史。
    """

    def __init__(self, max_history: int):
        if max_history < 1:
            raise ValueError("max_history must be >= 1")
        self._max_history = max_history
        self._messages: Deque[Message] = deque(maxlen=max_history)
        self._lock = threading.Lock()

    @property
    def max_history(self) -> int:
        return self._max_history

    def add_message(self, message: Message) -> None:
        with self._lock:
            self._messages.append(message)

    def get_messages(self) -> List[Message]:
        with self._lock:
            return list(self._messages)

    def clear(self) -> None:
        with self._lock:
            self._messages.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)


class ConversationStore(Protocol):
    def get_or_create(self, user_id: str) -> ConversationMemory:
        ...

    def append(self, user_id: str, message: Message) -> None:
        ...

    def clear(self, user_id: str) -> None:
        ...

    def clear_all(self) -> None:
        ...

    def snapshot(self, user_id: str) -> Optional[List[Message]]:
        ...

    def active_count(self) -> int:
        ...

    def turn_lock(self, user_id: str) -> asyncio.Lock:
        ...
