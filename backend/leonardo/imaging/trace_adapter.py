"""
描摹适配器 - 包装外部描摹能力，统一超时与错误类型

职责：
1. 解码并二值化位图、调用描摹后端（专用线程池中执行）
2. 先取得描摹槽位再开始计时，排队时间不计入描摹超时
3. 超时即放弃该调用；被放弃的调用在线程真正结束后才归还槽位
4. 将后端结果/异常归一化为 TracedArtifact / TraceError
5. 配置了转换器时在同一描摹调用内把SVG转为目标格式（如 VectorDrawable）

测试要点：
- test_trace_success: 正常描摹
- test_trace_timeout: 超时 → TraceError(Timeout)，不产生产物
- test_trace_queue_not_counted: 并发超过线程数时排队不计入超时
- test_trace_decode_error: 无法解码 → DecodeError
- test_trace_backend_failure: 后端异常 → TraceFailure
- test_trace_with_converter: 转换器输出成为产物
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor

from ..config import get_config
from ..interfaces import ITracer, IVectorConverter, TraceError, TraceErrorKind
from ..models import RawImage, TracedArtifact
from .bitmap import prepare_bitmap

logger = logging.getLogger(__name__)


class TraceAdapter:
    """描摹适配器"""

    def __init__(
        self,
        tracer: ITracer,
        timeout: float | None = None,
        threads: int | None = None,
        converter: IVectorConverter | None = None,
    ):
        config = get_config()
        self.tracer = tracer
        self.converter = converter
        self.timeout = timeout or config.timeouts.trace_sec
        self.threshold = config.trace.threshold
        self.max_pixels = config.trace.max_pixels
        self.threads = threads or config.concurrency.trace_threads
        # 槽位数与线程数一致，线程池内不会出现排队
        self._slots = asyncio.Semaphore(self.threads)
        self._busy = 0
        self._executor = ThreadPoolExecutor(
            max_workers=self.threads,
            thread_name_prefix="leonardo-trace",
        )

    async def trace(self, submission_id: str, raw: RawImage) -> TracedArtifact:
        """描摹一张图像"""
        await self._slots.acquire()
        self._busy += 1
        loop = asyncio.get_running_loop()
        job = loop.run_in_executor(self._executor, self._run, raw)
        job.add_done_callback(self._release)

        try:
            content = await asyncio.wait_for(asyncio.shield(job), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"[{submission_id}] 描摹超时({self.timeout}s)，放弃调用")
            raise TraceError(TraceErrorKind.TIMEOUT, f"超过{self.timeout}s") from e

        extension = self.converter.extension if self.converter is not None else "svg"
        artifact = TracedArtifact.from_svg(submission_id, content, extension=extension)
        logger.info(f"[{submission_id}] 描摹完成: {artifact.file_name} {artifact.byte_size} bytes")
        return artifact

    def _release(self, job: asyncio.Future) -> None:
        """线程结束后归还槽位（被放弃调用的异常在此取走）"""
        self._busy -= 1
        self._slots.release()
        if not job.cancelled():
            job.exception()

    def _run(self, raw: RawImage) -> str | bytes:
        bitmap = prepare_bitmap(raw.data, self.tracer.bitmap_format, self.threshold, self.max_pixels)
        try:
            svg = self._validate(self.tracer.trace(bitmap))
            if self.converter is None:
                return svg
            return self.converter.convert(svg)
        except TraceError:
            raise
        except Exception as e:
            raise TraceError(TraceErrorKind.TRACE_FAILURE, f"{type(e).__name__}: {e}") from e

    @property
    def busy(self) -> int:
        """正在占用的描摹线程数（含已超时但尚未结束的调用）"""
        return self._busy

    @staticmethod
    def _validate(svg: str | bytes) -> str:
        text = svg.decode("utf-8", errors="replace") if isinstance(svg, bytes) else svg
        if not text or "<svg" not in text:
            raise TraceError(TraceErrorKind.TRACE_FAILURE, "描摹输出不是SVG")
        return text

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
