"""
提交分发器 - 消费聊天事件流并为每个图像消息启动一个提交任务

职责：
1. 图像消息 → 登记提交 → 独立任务交给协调器
2. /start、/help 命令回复帮助；其余文本回复提示
3. 准入背压：进行中 + 排队的提交数不超过 max_workers + max_queue
4. 关闭时等待进行中的提交完成（每个提交都会收到回复）

测试要点：
- test_dispatch_image: 图像消息产生一条回复
- test_dispatch_help: /help 命令
- test_dispatch_text_hint: 纯文本提示
- test_duplicate_redelivery: 重复投递只处理一次
- test_cancel_while_waiting_admission: 等待准入时被取消不留下登记
"""

from __future__ import annotations

import asyncio
import logging

from ..config import get_config
from ..interfaces import IChatChannel
from ..models import EventKind, InboundEvent, Submission
from .coordinator import SubmissionCoordinator
from .submission_manager import SubmissionManager

logger = logging.getLogger(__name__)

HELP_COMMANDS = frozenset({"start", "help"})


class SubmissionDispatcher:
    """事件分发器"""

    def __init__(
        self,
        channel: IChatChannel,
        coordinator: SubmissionCoordinator,
        manager: SubmissionManager | None = None,
        max_pending: int | None = None,
    ):
        config = get_config()
        self.channel = channel
        self.coordinator = coordinator
        self.responder = coordinator.responder
        self.manager = manager or SubmissionManager()
        self.max_pending = max_pending or (
            config.concurrency.max_workers + config.concurrency.max_queue
        )
        self._admission = asyncio.Semaphore(self.max_pending)
        self._tasks: set[asyncio.Task] = set()

    async def run(self) -> None:
        """消费事件流直至其结束，随后等待进行中的提交"""
        logger.info(f"分发器启动 (max_pending={self.max_pending})")
        try:
            async for event in self.channel.events():
                await self.handle_event(event)
        finally:
            await self.drain()
        logger.info("事件流结束，分发器退出")

    async def handle_event(self, event: InboundEvent) -> asyncio.Task | None:
        """处理单个入站事件；图像消息返回其提交任务"""
        if event.kind == EventKind.IMAGE:
            return await self._admit(event)

        if event.kind == EventKind.COMMAND:
            if event.command not in HELP_COMMANDS:
                logger.info(f"[{event.chat_id}] 未知命令 /{event.command}，回复帮助")
            await self.responder.send_help(event.chat_id, event.message_id)
        else:
            await self.responder.send_hint(event.chat_id, event.message_id)
        return None

    async def _admit(self, event: InboundEvent) -> asyncio.Task | None:
        # 队列已满时阻塞事件消费，不再拉取新消息；取得名额后才登记提交
        await self._admission.acquire()
        submission = self.manager.create_submission(event)
        if submission is None:
            self._admission.release()
            return None

        logger.info(
            f"[{submission.submission_id}] 已接收: {submission.image.describe()} "
            f"(进行中 {len(self.manager)}/{self.max_pending})"
        )

        task = asyncio.create_task(
            self._process(submission),
            name=f"submission-{submission.submission_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _process(self, submission: Submission) -> Submission:
        try:
            await self.coordinator.process(submission)
            return submission
        finally:
            self.manager.discard(submission.submission_id)
            self._admission.release()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """等待所有进行中的提交结束"""
        if not self._tasks:
            return
        logger.info(f"等待 {len(self._tasks)} 个进行中的提交")
        await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """取消所有进行中的提交"""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
