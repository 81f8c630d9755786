"""
版本化存储单元测试

在临时目录中使用真实 git 仓库（git 不可用时跳过）。
"""

import asyncio
import threading
import time
from pathlib import Path

import pytest

from leonardo.interfaces import GitCommandError, StoreError, StoreErrorKind
from leonardo.models import TracedArtifact
from leonardo.store import COMMIT_PREFIX, GitRepository, VersionedStore

from conftest import requires_git

pytestmark = requires_git


def _artifact(submission_id: str) -> TracedArtifact:
    return TracedArtifact.from_svg(submission_id, f"<svg><desc>{submission_id}</desc></svg>")


@pytest.fixture
def repo(temp_dir: Path) -> GitRepository:
    return GitRepository(temp_dir / "repo", timeout=10)


class FailingCommitRepo(GitRepository):
    """暂存成功、提交失败"""

    def commit(self, message: str) -> str:
        raise GitCommandError(["commit", "-m", message], "simulated failure")


class SlowAddRepo(GitRepository):
    """暂存前阻塞，用于模拟取消时写入线程仍在运行"""

    def __init__(self, *args, delay: float = 0.3, **kwargs):
        super().__init__(*args, **kwargs)
        self.delay = delay
        self.add_started = threading.Event()

    def add(self, rel_path: str) -> None:
        self.add_started.set()
        time.sleep(self.delay)
        super().add(rel_path)


class TestGitRepository:
    """git 封装测试"""

    def test_init_and_commit(self, repo: GitRepository):
        repo.init()
        assert repo.is_initialized()
        assert not repo.has_commits()

        head = repo.commit_empty("root")
        assert repo.has_commits()
        assert repo.head() == head
        assert repo.commit_count() == 1

    def test_log_commits(self, repo: GitRepository):
        repo.init()
        repo.commit_empty("root")
        (repo.path / "a.svg").write_text("<svg/>")
        repo.add("a.svg")
        repo.commit(f"{COMMIT_PREFIX}1-1")
        repo.commit_empty("unrelated")
        repo.commit_empty(f"{COMMIT_PREFIX}1-2")

        commits = repo.log_commits(COMMIT_PREFIX)
        assert [(s, paths) for _, s, paths in commits] == [
            (f"{COMMIT_PREFIX}1-2", []),
            (f"{COMMIT_PREFIX}1-1", ["a.svg"]),
        ]

    def test_command_error(self, repo: GitRepository):
        repo.init()
        with pytest.raises(GitCommandError):
            repo.head()


class TestVersionedStore:
    """版本化存储测试"""

    def test_initialize(self, repo: GitRepository):
        store = VersionedStore(repo=repo)
        asyncio.run(store.initialize())

        assert repo.commit_count() == 1
        assert repo.status() == ""

    def test_store_creates_commit(self, repo: GitRepository):
        store = VersionedStore(repo=repo)
        artifact = _artifact("100-1")

        reference = asyncio.run(store.store(artifact))

        assert reference.path == "artifacts/100-1.svg"
        assert reference.commit_id == repo.head()
        assert (repo.path / reference.path).read_bytes() == artifact.content
        assert repo.log_commits(COMMIT_PREFIX)[0] == (
            reference.commit_id, "submission:100-1", ["artifacts/100-1.svg"]
        )
        assert repo.status() == ""

    def test_store_dedup(self, repo: GitRepository):
        store = VersionedStore(repo=repo)

        async def run():
            first = await store.store(_artifact("100-1"))
            second = await store.store(_artifact("100-1"))
            return first, second

        first, second = asyncio.run(run())

        assert first == second
        # 初始提交 + 1 个产物提交
        assert repo.commit_count() == 2

    def test_dedup_survives_restart(self, repo: GitRepository):
        first = asyncio.run(VersionedStore(repo=repo).store(_artifact("100-1")))

        restarted = VersionedStore(repo=GitRepository(repo.path))
        assert asyncio.run(restarted.store(_artifact("100-1"))) == first
        assert repo.commit_count() == 2

    def test_restart_index_keeps_extension(self, repo: GitRepository):
        artifact = _artifact("100-1").model_copy(update={"extension": "xml"})
        first = asyncio.run(VersionedStore(repo=repo).store(artifact))
        assert first.path == "artifacts/100-1.xml"

        restarted = VersionedStore(repo=GitRepository(repo.path))
        assert asyncio.run(restarted.store(_artifact("100-1"))) == first
        assert repo.commit_count() == 2
        assert not (repo.path / "artifacts/100-1.svg").exists()

    def test_store_single_writer(self, repo: GitRepository):
        store = VersionedStore(repo=repo)

        async def run():
            return await asyncio.gather(*(store.store(_artifact(f"100-{i}")) for i in range(5)))

        references = asyncio.run(run())

        assert store.peak_writers == 1
        assert store.active_writers == 0
        assert len({r.commit_id for r in references}) == 5
        assert repo.commit_count() == 6
        assert repo.status() == ""

    def test_store_commit_failure_rollback(self, temp_dir: Path):
        repo = FailingCommitRepo(temp_dir / "repo", timeout=10)
        store = VersionedStore(repo=repo)
        asyncio.run(store.initialize())
        head = repo.head()

        with pytest.raises(StoreError) as exc_info:
            asyncio.run(store.store(_artifact("100-1")))

        assert exc_info.value.kind == StoreErrorKind.COMMIT_ERROR
        assert repo.head() == head
        assert repo.status() == ""
        assert not (repo.path / "artifacts/100-1.svg").exists()

    def test_store_cancelled_before_commit(self, temp_dir: Path):
        """取消后等待写入线程回滚，锁释放时工作树干净"""
        repo = SlowAddRepo(temp_dir / "repo", timeout=10)
        store = VersionedStore(repo=repo)

        async def run():
            await store.initialize()
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(store.store(_artifact("100-1")), timeout=0.1)
            # 锁已释放，后续写入正常
            repo.delay = 0
            return await store.store(_artifact("100-2"))

        reference = asyncio.run(run())

        assert repo.add_started.is_set()
        assert repo.status() == ""
        assert repo.commit_count() == 2
        assert reference.path == "artifacts/100-2.svg"
        assert not (repo.path / "artifacts/100-1.svg").exists()
        assert [s for _, s, _ in repo.log_commits(COMMIT_PREFIX)] == ["submission:100-2"]

    def test_write_error(self, repo: GitRepository):
        store = VersionedStore(repo=repo)
        asyncio.run(store.initialize())
        # 用同名文件占住产物目录
        (repo.path / "artifacts").write_text("not a directory")

        with pytest.raises(StoreError) as exc_info:
            asyncio.run(store.store(_artifact("100-1")))
        assert exc_info.value.kind == StoreErrorKind.WRITE_ERROR

    def test_push_failure_not_fatal(self, repo: GitRepository):
        store = VersionedStore(repo=repo, push_remote="does-not-exist")
        reference = asyncio.run(store.store(_artifact("100-1")))
        assert reference.commit_id == repo.head()
