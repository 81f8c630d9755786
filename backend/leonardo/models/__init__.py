"""
数据模型层 - 定义系统核心数据结构

所有模块通过这些模型交互，实现解耦：
- Submission: 单次提交的阶段状态机与结果
- ImageReference / RawImage: 图像来源与下载结果
- TracedArtifact / StoreReference: 描摹产物与存储引用
- InboundEvent / OutboundReply: 聊天入站事件与出站回复
"""

from .artifact import StoreReference, TracedArtifact
from .events import EventKind, InboundEvent, OutboundReply, ReplyDocument
from .image import ImageFormat, ImageReference, RawImage
from .submission import (
    STAGE_ORDER,
    Submission,
    SubmissionFailure,
    SubmissionStage,
)

__all__ = [
    "Submission",
    "SubmissionStage",
    "SubmissionFailure",
    "STAGE_ORDER",
    "ImageFormat",
    "ImageReference",
    "RawImage",
    "TracedArtifact",
    "StoreReference",
    "EventKind",
    "InboundEvent",
    "OutboundReply",
    "ReplyDocument",
]
