"""
工作池 - 以 WorkerSlot 为单位限制同时在途的提交数
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field


@dataclass(frozen=True)
class WorkerSlot:
    """一个单位的并发容量（不持久化）"""
    slot_id: int
    acquired_at: float = field(default_factory=time.monotonic)


class WorkerPool:
    """有界工作池"""

    def __init__(self, size: int):
        if size < 1:
            raise ValueError("工作池大小必须 >= 1")
        self.size = size
        self._semaphore = asyncio.Semaphore(size)
        self._free_ids = list(range(size - 1, -1, -1))
        self.in_use = 0
        self.peak_in_use = 0

    async def acquire(self) -> WorkerSlot:
        await self._semaphore.acquire()
        self.in_use += 1
        self.peak_in_use = max(self.peak_in_use, self.in_use)
        return WorkerSlot(slot_id=self._free_ids.pop())

    def release(self, slot: WorkerSlot) -> None:
        self._free_ids.append(slot.slot_id)
        self.in_use -= 1
        self._semaphore.release()

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[WorkerSlot]:
        """获取一个槽位，退出（含异常/取消）时必定释放"""
        worker_slot = await self.acquire()
        try:
            yield worker_slot
        finally:
            self.release(worker_slot)
