"""
提交协调器 - 编排单个提交的 下载 → 描摹 → 存储 → 回复

职责：
1. 获取 WorkerSlot 后按顺序执行各阶段，结束（成功/失败）后释放
2. 下载阶段的瞬时错误按有界次数退避重试
3. 整体超时（覆盖下载/描摹/存储），超时按 PipelineTimeout 失败
4. 捕获所有阶段错误并转换为失败结果，保证每个提交恰好一条回复

测试要点：
- test_process_success: 完整流程成功
- test_fetch_retry_then_fail: 重试耗尽后失败，且从未进入存储
- test_trace_timeout_releases_slot: 描摹超时后释放槽位
- test_pipeline_timeout: 整体超时
"""

from __future__ import annotations

import logging
from typing import Any

import asyncio
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..config import get_config
from ..imaging import TraceAdapter
from ..interfaces import (
    IImageFetcher,
    IResponder,
    IVersionedStore,
    PipelineError,
    PipelineErrorKind,
    PipelineTimeout,
    StageError,
)
from ..models import RawImage, Submission, SubmissionStage
from .stages import SUBMISSION_STAGES, PipelineStage
from .worker_pool import WorkerPool

logger = logging.getLogger(__name__)


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, StageError) and error.transient


class SubmissionCoordinator:
    """提交协调器"""

    def __init__(
        self,
        fetcher: IImageFetcher,
        trace_adapter: TraceAdapter,
        store: IVersionedStore,
        responder: IResponder,
        pool: WorkerPool | None = None,
        submission_timeout: float | None = None,
        max_retries: int | None = None,
        retry_backoff_ms: int | None = None,
    ):
        config = get_config()
        self.fetcher = fetcher
        self.trace_adapter = trace_adapter
        self.store = store
        self.responder = responder
        self.pool = pool or WorkerPool(config.concurrency.max_workers)

        self.max_image_bytes = config.fetch.max_image_bytes
        self.submission_timeout = submission_timeout or config.timeouts.submission_sec
        self.max_retries = max_retries if max_retries is not None else config.retries.max_retries
        backoff_ms = (
            retry_backoff_ms if retry_backoff_ms is not None else config.retries.retry_backoff_ms
        )
        self.backoff_sec = backoff_ms / 1000
        self.backoff_max_sec = config.retries.retry_backoff_max_ms / 1000

    async def process(self, submission: Submission) -> Submission:
        """处理一个提交直至终态并发送回复"""
        async with self.pool.slot() as slot:
            logger.info(f"[{submission.submission_id}] 开始处理 (slot={slot.slot_id})")
            context: dict[str, Any] = {}

            try:
                await asyncio.wait_for(
                    self._run_stages(submission, context),
                    timeout=self.submission_timeout,
                )
            except asyncio.TimeoutError:
                self._fail(submission, PipelineTimeout(f"超过{self.submission_timeout}s"))
            except StageError as e:
                self._fail(submission, e)
            except Exception as e:
                logger.exception(f"[{submission.submission_id}] 流水线未预期异常")
                self._fail(submission, PipelineError(PipelineErrorKind.INTERNAL, type(e).__name__))

            await self._respond(submission, context)

        return submission

    async def _run_stages(self, submission: Submission, context: dict[str, Any]) -> None:
        for stage in SUBMISSION_STAGES:
            await self._execute_stage(submission, stage, context)

    async def _execute_stage(
        self,
        submission: Submission,
        stage: PipelineStage,
        context: dict[str, Any],
    ) -> None:
        """执行单个阶段"""
        logger.info(f"[{submission.submission_id}] 开始阶段: {stage.name}")

        if stage.stage == SubmissionStage.FETCHING:
            context["raw"] = await self._stage_fetch(submission, stage)

        elif stage.stage == SubmissionStage.TRACING:
            submission.advance(SubmissionStage.TRACING)
            # 原始图像的所有权移交给描摹阶段
            raw: RawImage = context.pop("raw")
            context["artifact"] = await self.trace_adapter.trace(submission.submission_id, raw)

        elif stage.stage == SubmissionStage.STORING:
            submission.advance(SubmissionStage.STORING)
            reference = await self.store.store(context["artifact"])
            submission.mark_stored(reference)

    async def _stage_fetch(self, submission: Submission, stage: PipelineStage) -> RawImage:
        """下载（瞬时错误退避重试）"""
        max_attempts = self.max_retries + 1 if stage.retryable else 1
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=self.backoff_sec, max=self.backoff_max_sec),
            retry=retry_if_exception(_is_transient),
            before_sleep=self._log_retry(submission),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                submission.advance(
                    SubmissionStage.FETCHING,
                    retry=attempt.retry_state.attempt_number > 1,
                )
                raw = await self.fetcher.fetch(submission.image, self.max_image_bytes)
                logger.info(
                    f"[{submission.submission_id}] 下载完成: {raw.format.value} {raw.byte_length} bytes"
                )
                return raw
        raise PipelineError(PipelineErrorKind.INTERNAL, "重试循环未返回结果")

    @staticmethod
    def _log_retry(submission: Submission):
        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                f"[{submission.submission_id}] 下载失败({error})，"
                f"{retry_state.next_action.sleep if retry_state.next_action else 0:.1f}s后第"
                f"{retry_state.attempt_number}次重试"
            )

        return before_sleep

    async def _respond(self, submission: Submission, context: dict[str, Any]) -> None:
        if submission.stage == SubmissionStage.FAILED:
            await self.responder.respond(submission)
            return

        submission.advance(SubmissionStage.RESPONDING)
        sent = await self.responder.respond(submission, context.get("artifact"))
        submission.mark_done()
        logger.info(
            f"[{submission.submission_id}] 完成: {submission.reference.path} "
            f"@ {submission.reference.short_id}" + ("" if sent else "（回复未送达）")
        )

    @staticmethod
    def _fail(submission: Submission, error: StageError) -> None:
        logger.warning(f"[{submission.submission_id}] 失败于 {submission.stage.value}: {error}")
        submission.mark_failed(error)
