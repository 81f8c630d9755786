"""
内存通道 - 进程内的事件源/消息汇，用于本地运行与测试
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from ..interfaces import ChannelError, IChatChannel, IFileResolver
from ..models import InboundEvent, OutboundReply


class MemoryChannel(IChatChannel, IFileResolver):
    """内存通道"""

    def __init__(self, files: dict[str, str] | None = None):
        self._inbound: asyncio.Queue[InboundEvent | None] = asyncio.Queue()
        self.sent: list[OutboundReply] = []
        self.files = dict(files or {})
        self.fail_sends = False

    def put(self, event: InboundEvent) -> None:
        self._inbound.put_nowait(event)

    def close(self) -> None:
        """结束事件流"""
        self._inbound.put_nowait(None)

    async def events(self) -> AsyncIterator[InboundEvent]:
        while True:
            event = await self._inbound.get()
            if event is None:
                return
            yield event

    async def send(self, reply: OutboundReply) -> None:
        if self.fail_sends:
            raise ChannelError("发送失败（模拟）")
        self.sent.append(reply)

    async def resolve_file_url(self, file_id: str) -> str:
        try:
            return self.files[file_id]
        except KeyError as e:
            raise ChannelError(f"未知文件: {file_id}") from e

    def replies_for(self, chat_id: int) -> list[OutboundReply]:
        return [r for r in self.sent if r.chat_id == chat_id]
