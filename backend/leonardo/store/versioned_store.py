"""
版本化存储 - 单工作树、单写入者的追加式产物日志

职责：
1. 独占锁保护 写入 → 暂存 → 提交 全过程
2. 每个产物恰好一个提交，提交说明为 submission:<id>
3. 同一 submission_id 重复写入直接返回已有引用（去重）
4. 提交失败/被取消时回滚工作树，保证释放锁时工作树干净

测试要点：
- test_store_creates_commit: 正常写入与提交
- test_store_dedup: 重复写入不产生新提交
- test_store_single_writer: 任意时刻最多一个写入者
- test_store_commit_failure_rollback: 提交失败回滚
- test_restart_index_keeps_extension: 重启后索引使用实际提交的路径
"""

from __future__ import annotations

import asyncio
import logging
import threading

from ..config import get_config
from ..interfaces import (
    GitCommandError,
    IVersionedStore,
    StoreError,
    StoreErrorKind,
)
from ..models import StoreReference, TracedArtifact
from .git_repo import GitRepository

logger = logging.getLogger(__name__)

COMMIT_PREFIX = "submission:"
INIT_MESSAGE = "leonardo: initialize artifact store"


class _Abandoned(Exception):
    """写入线程在提交前收到放弃信号"""


class VersionedStore(IVersionedStore):
    """基于 git 工作树的版本化存储（进程内单例，按引用共享）"""

    def __init__(
        self,
        repo: GitRepository | None = None,
        artifacts_dir: str | None = None,
        push_remote: str | None = None,
        push_branch: str | None = None,
    ):
        config = get_config()
        self.repo = repo or GitRepository(
            config.store.repo_path,
            timeout=config.timeouts.git_command_sec,
            author_name=config.store.author_name,
            author_email=config.store.author_email,
        )
        self.artifacts_dir = artifacts_dir or config.store.artifacts_dir
        self.push_remote = push_remote if push_remote is not None else config.store.push_remote
        self.push_branch = push_branch if push_branch is not None else config.store.push_branch

        self._lock = asyncio.Lock()
        self._index: dict[str, StoreReference] | None = None
        self._active_writers = 0
        self.peak_writers = 0

    @staticmethod
    def commit_message(submission_id: str) -> str:
        return f"{COMMIT_PREFIX}{submission_id}"

    def artifact_path(self, submission_id: str, extension: str) -> str:
        return f"{self.artifacts_dir}/{submission_id}.{extension}"

    @property
    def active_writers(self) -> int:
        return self._active_writers

    # === 公共接口 ===

    async def initialize(self) -> None:
        """确保仓库存在且至少有一个提交，并建立去重索引"""
        async with self._lock:
            await asyncio.to_thread(self._initialize_sync)

    async def store(self, artifact: TracedArtifact) -> StoreReference:
        """写入并提交产物"""
        async with self._lock:
            self._active_writers += 1
            self.peak_writers = max(self.peak_writers, self._active_writers)
            try:
                return await self._store_locked(artifact)
            finally:
                self._active_writers -= 1

    # === 锁内逻辑 ===

    async def _store_locked(self, artifact: TracedArtifact) -> StoreReference:
        abandon = threading.Event()
        task = asyncio.ensure_future(
            asyncio.to_thread(self._write_and_commit, artifact, abandon)
        )
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            abandon.set()
            logger.warning(f"[{artifact.submission_id}] 存储被取消，等待写入线程回滚")
            await self._drain(task)
            raise

    @staticmethod
    async def _drain(task: asyncio.Future) -> None:
        """等待写入线程结束后再释放锁（期间的再次取消被忽略）"""
        while not task.done():
            try:
                await asyncio.wait({task})
            except asyncio.CancelledError:
                continue
        if not task.cancelled():
            task.exception()

    def _initialize_sync(self) -> None:
        try:
            if not self.repo.is_initialized():
                logger.info(f"初始化产物仓库: {self.repo.path}")
                self.repo.init()
            if not self.repo.has_commits():
                self.repo.commit_empty(INIT_MESSAGE)
            self._index = self._load_index()
        except GitCommandError as e:
            raise StoreError(StoreErrorKind.WRITE_ERROR, f"仓库初始化失败: {e}") from e
        logger.info(f"产物仓库就绪: {self.repo.path}，已有 {len(self._index)} 个产物")

    def _load_index(self) -> dict[str, StoreReference]:
        index: dict[str, StoreReference] = {}
        for commit_id, subject, paths in self.repo.log_commits(COMMIT_PREFIX):
            submission_id = subject[len(COMMIT_PREFIX):].strip()
            if not submission_id or submission_id in index:
                continue
            stem = self.artifact_path(submission_id, "")
            path = next((p for p in paths if p.startswith(stem)), None)
            if path is not None:
                index[submission_id] = StoreReference(commit_id=commit_id, path=path)
        return index

    def _ensure_index(self) -> dict[str, StoreReference]:
        if self._index is None:
            self._initialize_sync()
        return self._index

    def _write_and_commit(self, artifact: TracedArtifact, abandon: threading.Event) -> StoreReference:
        submission_id = artifact.submission_id
        try:
            index = self._ensure_index()
            existing = index.get(submission_id)
            if existing is not None:
                logger.info(f"[{submission_id}] 已存在提交 {existing.short_id}，跳过写入")
                return existing
            previous_head = self.repo.head()
        except GitCommandError as e:
            raise StoreError(StoreErrorKind.WRITE_ERROR, str(e)) from e

        rel_path = self.artifact_path(submission_id, artifact.extension)
        target = self.repo.path / rel_path
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(artifact.content)
        except OSError as e:
            self._rollback(rel_path, previous_head)
            raise StoreError(StoreErrorKind.WRITE_ERROR, f"{type(e).__name__}: {e}") from e

        try:
            self._check_abandoned(abandon)
            self.repo.add(rel_path)
            self._check_abandoned(abandon)
            commit_id = self.repo.commit(self.commit_message(submission_id))
        except _Abandoned as e:
            self._rollback(rel_path, previous_head)
            raise StoreError(StoreErrorKind.COMMIT_ERROR, "提交前被取消") from e
        except GitCommandError as e:
            self._rollback(rel_path, previous_head)
            raise StoreError(StoreErrorKind.COMMIT_ERROR, e.detail) from e

        reference = StoreReference(commit_id=commit_id, path=rel_path)
        index[submission_id] = reference
        logger.info(f"[{submission_id}] 已提交 {reference.short_id}: {rel_path}")

        self._push(submission_id)
        return reference

    @staticmethod
    def _check_abandoned(abandon: threading.Event) -> None:
        if abandon.is_set():
            raise _Abandoned()

    def _rollback(self, rel_path: str, previous_head: str) -> None:
        """回滚到写入前的HEAD并清理产物文件"""
        try:
            self.repo.reset_hard(previous_head)
            self.repo.clean_path(rel_path)
        except GitCommandError as e:
            logger.error(f"回滚失败，工作树可能不一致: {e}")
            return
        logger.info(f"已回滚工作树到 {previous_head[:7]}")

    def _push(self, submission_id: str) -> None:
        if not self.push_remote:
            return
        try:
            self.repo.push(self.push_remote, self.push_branch)
        except GitCommandError as e:
            # 提交已在本地持久化，推送失败不影响结果
            logger.warning(f"[{submission_id}] 推送到 {self.push_remote} 失败: {e}")
