"""
git 仓库封装 - 通过 git 命令行操作工作树

职责：
- 初始化仓库 / 读取HEAD / 暂存 / 提交 / 回滚 / 推送
- 处理超时和错误（统一抛出 GitCommandError）

依赖：
- git 可执行文件（PATH 中可用）

注意：本类不做并发控制，调用方必须保证同一时刻只有一个写入者。
"""

from __future__ import annotations

import subprocess
from pathlib import Path

from ..interfaces import GitCommandError


class GitRepository:
    """git 工作树封装"""

    def __init__(
        self,
        path: Path,
        timeout: float = 30,
        author_name: str = "Leonardo",
        author_email: str = "leonardo@localhost",
        exe: str = "git",
    ):
        self.path = Path(path)
        self.timeout = timeout
        self.author_name = author_name
        self.author_email = author_email
        self.exe = exe

    def _run(self, *args: str) -> str:
        cmd = [
            self.exe,
            "-c", f"user.name={self.author_name}",
            "-c", f"user.email={self.author_email}",
            "-c", "commit.gpgsign=false",
            *args,
        ]
        try:
            result = subprocess.run(
                cmd,
                cwd=str(self.path),
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=True,
            )
        except FileNotFoundError as e:
            raise GitCommandError(list(args), f"无法执行 {self.exe}: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise GitCommandError(list(args), f"超时({self.timeout}s)") from e
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or e.stdout or "").strip()
            raise GitCommandError(list(args), detail) from e
        return result.stdout.strip()

    # === 查询 ===

    def is_initialized(self) -> bool:
        return (self.path / ".git").exists()

    def has_commits(self) -> bool:
        try:
            self._run("rev-parse", "--verify", "--quiet", "HEAD")
        except GitCommandError:
            return False
        return True

    def head(self) -> str:
        return self._run("rev-parse", "HEAD")

    def commit_count(self) -> int:
        return int(self._run("rev-list", "--count", "HEAD"))

    def log_commits(self, prefix: str) -> list[tuple[str, str, list[str]]]:
        """列出提交说明以 prefix 开头的提交 [(commit_id, subject, 变更路径)]，新的在前"""
        output = self._run(
            "log", "--format=%x00%H%x09%s", "--name-only", f"--grep=^{prefix}"
        )
        entries = []
        for block in output.split("\x00"):
            lines = [line for line in block.splitlines() if line.strip()]
            if not lines:
                continue
            commit_id, _, subject = lines[0].partition("\t")
            if subject.startswith(prefix):
                entries.append((commit_id, subject, lines[1:]))
        return entries

    def status(self) -> str:
        return self._run("status", "--porcelain")

    # === 写操作 ===

    def init(self) -> None:
        self.path.mkdir(parents=True, exist_ok=True)
        self._run("init", "--quiet")

    def add(self, rel_path: str) -> None:
        self._run("add", "--", rel_path)

    def commit(self, message: str) -> str:
        """提交已暂存内容，返回新提交ID"""
        self._run("commit", "--quiet", "--no-verify", "-m", message)
        return self.head()

    def commit_empty(self, message: str) -> str:
        self._run("commit", "--quiet", "--no-verify", "--allow-empty", "-m", message)
        return self.head()

    def reset_hard(self, rev: str) -> None:
        self._run("reset", "--quiet", "--hard", rev)

    def clean_path(self, rel_path: str) -> None:
        """删除未跟踪文件"""
        self._run("clean", "--quiet", "--force", "--", rel_path)

    def push(self, remote: str, branch: str | None = None) -> None:
        refspec = f"HEAD:refs/heads/{branch}" if branch else "HEAD"
        self._run("push", "--quiet", remote, refspec)
