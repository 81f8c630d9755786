"""
存储模块 - git 工作树作为追加式产物存储

子模块：
- git_repo: git 命令行封装
- versioned_store: 单写入者的版本化存储
"""

from .git_repo import GitRepository
from .versioned_store import COMMIT_PREFIX, VersionedStore

__all__ = [
    "GitRepository",
    "VersionedStore",
    "COMMIT_PREFIX",
]
