"""
响应器 - 格式化并发送每个提交的唯一回复

职责：
1. 成功：渲染存储引用（链接/标识），按配置附带SVG文件
2. 失败：按错误类型给出面向用户的提示，绝不透出内部错误信息
3. 发送失败只记录日志，不重试

测试要点：
- test_success_reply: 成功回复含引用
- test_failure_reply_hides_detail: 失败回复不含内部信息
- test_send_failure_logged: 发送失败不抛出
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from ..config import get_config
from ..interfaces import (
    ChannelError,
    ErrorCategory,
    FetchErrorKind,
    IChatChannel,
    IResponder,
    PipelineErrorKind,
    StoreErrorKind,
    TraceErrorKind,
)
from ..models import OutboundReply, ReplyDocument, Submission, TracedArtifact

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "Send me an image and I will trace it to SVG and save it.\n"
    "PNGs with a transparent background work best: every visible pixel becomes part of the shape.\n\n"
    "These commands are supported:\n"
    "/help - display this text."
)

HINT_TEXT = "Please attach an image."

SUCCESS_TEXT = "Done with conversion. Your SVG is saved as {reference}."

def _code(category: ErrorCategory, kind: Enum) -> str:
    return f"{category.value}.{kind.value}"


_STORE_FAILED = "Your image was traced but could not be saved. Please try again later."

# 键为 "<大类>.<类型>"，与 SubmissionFailure.code 一致
FAILURE_TEXTS: dict[str, str] = {
    _code(ErrorCategory.FETCH, FetchErrorKind.UNREACHABLE): (
        "Sorry, I could not download your image. Please try sending it again."
    ),
    _code(ErrorCategory.FETCH, FetchErrorKind.TIMEOUT): (
        "Downloading your image took too long. Please try again later."
    ),
    _code(ErrorCategory.FETCH, FetchErrorKind.TOO_LARGE): (
        "This image is too large. The limit is {max_mb} MB."
    ),
    _code(ErrorCategory.FETCH, FetchErrorKind.UNSUPPORTED_FORMAT): (
        "This file type is not supported. Please send a PNG, JPEG, WebP, GIF or BMP image."
    ),
    _code(ErrorCategory.TRACE, TraceErrorKind.DECODE_ERROR): (
        "I could not read this image. It may be damaged or too big."
    ),
    _code(ErrorCategory.TRACE, TraceErrorKind.TRACE_FAILURE): (
        "Failed to trace your image to SVG."
    ),
    _code(ErrorCategory.TRACE, TraceErrorKind.TIMEOUT): (
        "Tracing your image took too long. Try a simpler or smaller image."
    ),
    _code(ErrorCategory.STORE, StoreErrorKind.WRITE_ERROR): _STORE_FAILED,
    _code(ErrorCategory.STORE, StoreErrorKind.COMMIT_ERROR): _STORE_FAILED,
    _code(ErrorCategory.PIPELINE, PipelineErrorKind.TIMEOUT): (
        "Processing your image took too long and was cancelled. Please try again."
    ),
}

FALLBACK_FAILURE_TEXT = "Something went wrong while processing your image. Please try again."


class Responder(IResponder):
    """回复格式化与发送"""

    def __init__(
        self,
        channel: IChatChannel,
        link_template: str | None = None,
        attach_artifact: bool | None = None,
        send_timeout: float | None = None,
        max_image_bytes: int | None = None,
    ):
        config = get_config()
        self.channel = channel
        self.link_template = link_template or config.store.link_template
        self.attach_artifact = (
            attach_artifact if attach_artifact is not None else config.responder.attach_artifact
        )
        self.send_timeout = send_timeout or config.timeouts.send_sec
        self.max_image_bytes = max_image_bytes or config.fetch.max_image_bytes

    def build_reply(
        self,
        submission: Submission,
        artifact: TracedArtifact | None = None,
    ) -> OutboundReply:
        """构造回复（不发送）"""
        if submission.reference is not None and submission.failure is None:
            link = submission.reference.render(self.link_template)
            document = None
            if self.attach_artifact and artifact is not None:
                document = ReplyDocument(file_name=artifact.file_name, content=artifact.content)
            return OutboundReply(
                chat_id=submission.chat_id,
                reply_to_message_id=submission.message_id,
                text=SUCCESS_TEXT.format(reference=link),
                artifact_link=link,
                document=document,
            )

        return OutboundReply(
            chat_id=submission.chat_id,
            reply_to_message_id=submission.message_id,
            text=self.failure_text(submission),
        )

    def failure_text(self, submission: Submission) -> str:
        failure = submission.failure
        if failure is None:
            return FALLBACK_FAILURE_TEXT
        template = FAILURE_TEXTS.get(failure.code, FALLBACK_FAILURE_TEXT)
        return template.format(max_mb=round(self.max_image_bytes / (1024 * 1024), 1))

    async def respond(
        self,
        submission: Submission,
        artifact: TracedArtifact | None = None,
    ) -> bool:
        """发送唯一回复"""
        return await self._send(self.build_reply(submission, artifact), submission.submission_id)

    async def send_help(self, chat_id: int, reply_to: int | None = None) -> bool:
        reply = OutboundReply(chat_id=chat_id, reply_to_message_id=reply_to, text=HELP_TEXT)
        return await self._send(reply, f"help:{chat_id}")

    async def send_hint(self, chat_id: int, reply_to: int | None = None) -> bool:
        reply = OutboundReply(chat_id=chat_id, reply_to_message_id=reply_to, text=HINT_TEXT)
        return await self._send(reply, f"hint:{chat_id}")

    async def _send(self, reply: OutboundReply, tag: str) -> bool:
        try:
            await asyncio.wait_for(self.channel.send(reply), timeout=self.send_timeout)
        except (ChannelError, asyncio.TimeoutError) as e:
            logger.warning(f"[{tag}] 回复发送失败（不重试）: {type(e).__name__}: {e}")
            return False
        except Exception:
            logger.exception(f"[{tag}] 回复发送异常（不重试）")
            return False
        return True
