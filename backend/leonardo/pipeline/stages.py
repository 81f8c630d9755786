"""
流水线阶段定义

职责：
1. 定义提交流水线各执行阶段及其顺序
2. 标记可重试阶段（仅下载阶段的瞬时错误可重试）

Responding / Done 由协调器在阶段执行完成后处理，不在此列出。
"""

from __future__ import annotations

from dataclasses import dataclass

from ..models import SubmissionStage


@dataclass(frozen=True)
class PipelineStage:
    """流水线阶段"""
    stage: SubmissionStage
    retryable: bool = False  # 瞬时错误是否按重试策略重入

    @property
    def name(self) -> str:
        return self.stage.value


# 提交流水线各阶段配置
SUBMISSION_STAGES: list[PipelineStage] = [
    PipelineStage(SubmissionStage.FETCHING, retryable=True),
    PipelineStage(SubmissionStage.TRACING),
    PipelineStage(SubmissionStage.STORING),
]
