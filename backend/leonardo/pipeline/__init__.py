"""
流水线模块 - 提交编排与执行

子模块：
- stages: 流水线各阶段定义
- worker_pool: 有界工作槽
- coordinator: 单个提交的编排
- submission_manager: 进行中提交登记
- dispatcher: 事件分发
"""

from .coordinator import SubmissionCoordinator
from .dispatcher import SubmissionDispatcher
from .stages import SUBMISSION_STAGES, PipelineStage
from .submission_manager import SubmissionManager
from .worker_pool import WorkerPool, WorkerSlot

__all__ = [
    "PipelineStage",
    "SUBMISSION_STAGES",
    "SubmissionCoordinator",
    "SubmissionDispatcher",
    "SubmissionManager",
    "WorkerPool",
    "WorkerSlot",
]
