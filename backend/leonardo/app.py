"""
应用装配 - 按运行期配置组装各组件并运行机器人

组件关系：
    TelegramChannel ──events──> SubmissionDispatcher ──> SubmissionCoordinator
                                                          ├─ ImageFetcher
                                                          ├─ TraceAdapter(tracer)
                                                          ├─ VersionedStore (单例)
                                                          └─ Responder ──send──> TelegramChannel
"""

from __future__ import annotations

import logging

from .chat import Responder, TelegramChannel
from .config import RuntimeConfig, get_config
from .imaging import ImageFetcher, TraceAdapter
from .imaging.tracers import create_converter, create_tracer
from .interfaces import IChatChannel, IFileResolver, ITracer
from .pipeline import SubmissionCoordinator, SubmissionDispatcher, WorkerPool
from .store import GitRepository, VersionedStore

logger = logging.getLogger(__name__)


def build_store(config: RuntimeConfig) -> VersionedStore:
    repo = GitRepository(
        config.store.repo_path,
        timeout=config.timeouts.git_command_sec,
        author_name=config.store.author_name,
        author_email=config.store.author_email,
    )
    return VersionedStore(repo=repo)


class Application:
    """机器人应用"""

    def __init__(
        self,
        channel: IChatChannel | None = None,
        tracer: ITracer | None = None,
        store: VersionedStore | None = None,
        config: RuntimeConfig | None = None,
    ):
        self.config = config or get_config()
        self.channel = channel or TelegramChannel()
        resolver = self.channel if isinstance(self.channel, IFileResolver) else None

        self.fetcher = ImageFetcher(resolver=resolver)
        self.trace_adapter = TraceAdapter(
            tracer or create_tracer(self.config.trace),
            converter=create_converter(self.config.trace),
        )
        self.store = store or build_store(self.config)
        self.responder = Responder(self.channel)
        self.pool = WorkerPool(self.config.concurrency.max_workers)
        self.coordinator = SubmissionCoordinator(
            fetcher=self.fetcher,
            trace_adapter=self.trace_adapter,
            store=self.store,
            responder=self.responder,
            pool=self.pool,
        )
        self.dispatcher = SubmissionDispatcher(self.channel, self.coordinator)

    async def run(self) -> None:
        """初始化存储并处理事件直至事件流结束"""
        await self.store.initialize()
        logger.info(
            f"Leonardo 启动: store={self.store.repo.path} "
            f"workers={self.pool.size} backend={self.config.trace.backend}"
        )
        try:
            await self.dispatcher.run()
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        await self.fetcher.aclose()
        self.trace_adapter.close()
        aclose = getattr(self.channel, "aclose", None)
        if aclose is not None:
            await aclose()
