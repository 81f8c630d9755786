"""
Telegram 通道 - 基于 Bot API 的入站事件源与出站消息汇

职责：
1. getUpdates 长轮询，将消息转换为 InboundEvent
2. sendMessage / sendDocument 发送回复
3. getFile 解析文件下载地址（供下载器使用）

接口失败时记录日志并退避重试；URL 含凭据，禁止写入日志。
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from ..config import get_config
from ..interfaces import ChannelError, IChatChannel, IFileResolver
from ..models import EventKind, ImageReference, InboundEvent, OutboundReply

logger = logging.getLogger(__name__)


def _largest_photo(photos: list[dict[str, Any]]) -> dict[str, Any]:
    return max(photos, key=lambda p: (p.get("width", 0) * p.get("height", 0), p.get("file_size", 0)))


def parse_update(update: dict[str, Any]) -> InboundEvent | None:
    """将一条 Telegram update 转换为入站事件（非消息类 update 返回None）"""
    message = update.get("message")
    if not message:
        return None

    chat_id = message["chat"]["id"]
    message_id = message["message_id"]

    reference = None
    if message.get("photo"):
        photo = _largest_photo(message["photo"])
        reference = ImageReference(file_id=photo["file_id"], declared_size=photo.get("file_size"))
    elif message.get("document", {}).get("mime_type", "").startswith("image/"):
        document = message["document"]
        reference = ImageReference(file_id=document["file_id"], declared_size=document.get("file_size"))

    if reference is not None:
        return InboundEvent(
            chat_id=chat_id,
            message_id=message_id,
            kind=EventKind.IMAGE,
            image_reference=reference,
            text=message.get("caption", ""),
        )

    text = message.get("text", "")
    kind = EventKind.COMMAND if text.startswith("/") else EventKind.TEXT
    return InboundEvent(chat_id=chat_id, message_id=message_id, kind=kind, text=text)


class TelegramChannel(IChatChannel, IFileResolver):
    """Telegram Bot API 通道"""

    def __init__(
        self,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
        api_base: str | None = None,
        poll_timeout: int | None = None,
        poll_retry_sec: float | None = None,
    ):
        config = get_config()
        self._token = token or config.bot.token.get_secret_value()
        if not self._token:
            raise ChannelError("未配置机器人凭据（LEONARDO_BOT__TOKEN）")
        self.api_base = (api_base or config.bot.api_base).rstrip("/")
        self.poll_timeout = poll_timeout if poll_timeout is not None else config.bot.poll_timeout_sec
        self.poll_retry_sec = poll_retry_sec if poll_retry_sec is not None else config.bot.poll_retry_sec
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(self.poll_timeout + 10))
        self._offset: int | None = None
        self._closed = False

    def _method_url(self, method: str) -> str:
        return f"{self.api_base}/bot{self._token}/{method}"

    async def _call(self, method: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.post(self._method_url(method), **kwargs)
        except httpx.HTTPError as e:
            raise ChannelError(f"{method}: {type(e).__name__}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise ChannelError(f"{method}: 非JSON响应 HTTP {response.status_code}") from e

        if not body.get("ok"):
            raise ChannelError(f"{method}: {body.get('description', response.status_code)}")
        return body.get("result")

    async def events(self) -> AsyncIterator[InboundEvent]:
        """长轮询入站事件"""
        while not self._closed:
            payload: dict[str, Any] = {"timeout": self.poll_timeout, "allowed_updates": ["message"]}
            if self._offset is not None:
                payload["offset"] = self._offset
            try:
                updates = await self._call("getUpdates", json=payload)
            except ChannelError as e:
                logger.warning(f"拉取更新失败，{self.poll_retry_sec}s后重试: {e}")
                await asyncio.sleep(self.poll_retry_sec)
                continue

            for update in updates or []:
                self._offset = update["update_id"] + 1
                event = parse_update(update)
                if event is not None:
                    yield event

    async def send(self, reply: OutboundReply) -> None:
        if reply.document is not None:
            data = {"chat_id": str(reply.chat_id), "caption": reply.text}
            if reply.reply_to_message_id is not None:
                data["reply_to_message_id"] = str(reply.reply_to_message_id)
            files = {
                "document": (reply.document.file_name, reply.document.content, reply.document.mime_type),
            }
            await self._call("sendDocument", data=data, files=files)
            return

        payload: dict[str, Any] = {
            "chat_id": reply.chat_id,
            "text": reply.text,
            "disable_web_page_preview": True,
        }
        if reply.reply_to_message_id is not None:
            payload["reply_to_message_id"] = reply.reply_to_message_id
        await self._call("sendMessage", json=payload)

    async def resolve_file_url(self, file_id: str) -> str:
        result = await self._call("getFile", json={"file_id": file_id})
        file_path = (result or {}).get("file_path")
        if not file_path:
            raise ChannelError(f"getFile: 文件不可下载 {file_id}")
        return f"{self.api_base}/file/bot{self._token}/{file_path}"

    async def aclose(self) -> None:
        self._closed = True
        if self._owns_client:
            await self._client.aclose()
