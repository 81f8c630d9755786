"""
聊天模块 - 聊天通道适配与回复

子模块：
- telegram: Telegram Bot API 通道
- memory: 内存通道（本地运行/测试）
- responder: 回复格式化与发送
"""

from .memory import MemoryChannel
from .responder import Responder
from .telegram import TelegramChannel, parse_update

__all__ = [
    "MemoryChannel",
    "Responder",
    "TelegramChannel",
    "parse_update",
]
