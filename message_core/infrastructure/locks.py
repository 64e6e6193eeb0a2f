"""按会话串行化变更操作。

定位引擎本身不加锁：并发的两个变更会各自基于调用时的记录快照计算序号，
后一个可能因为前一个删除而指向错误的消息。需要串行化时，
由调用方显式创建 ConversationLocks 并传给 MessageService。
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class ConversationLocks:
    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def get(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    def is_locked(self, conversation_id: str) -> bool:
        lock = self._locks.get(conversation_id)
        return bool(lock and lock.locked())

    @asynccontextmanager
    async def hold(self, conversation_id: str) -> AsyncIterator[None]:
        lock = self.get(conversation_id)
        self._waiters[conversation_id] = self._waiters.get(conversation_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            # 没有持有者和等待者时移除该会话的锁
            remaining = self._waiters[conversation_id] - 1
            if remaining:
                self._waiters[conversation_id] = remaining
            else:
                del self._waiters[conversation_id]
                if not lock.locked():
                    self._locks.pop(conversation_id, None)
