"""
聊天事件模型 - 入站事件与出站回复
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from .image import ImageReference


class EventKind(str, Enum):
    """入站事件类型"""
    IMAGE = "image"
    COMMAND = "command"
    TEXT = "text"


class InboundEvent(BaseModel):
    """入站事件"""
    chat_id: int
    message_id: int
    kind: EventKind = EventKind.IMAGE
    image_reference: ImageReference | None = None
    text: str = ""

    @property
    def command(self) -> str | None:
        """命令名（去掉前导/与@bot后缀）"""
        if self.kind != EventKind.COMMAND or not self.text.startswith("/"):
            return None
        head = self.text.split()[0][1:]
        return head.split("@", 1)[0].lower()


class ReplyDocument(BaseModel):
    """随回复附带的文件"""
    file_name: str
    content: bytes
    mime_type: str = "image/svg+xml"


class OutboundReply(BaseModel):
    """出站回复"""
    chat_id: int
    text: str
    reply_to_message_id: int | None = None
    artifact_link: str | None = None
    document: ReplyDocument | None = None
