"""
提交模型 - 定义单次用户提交的阶段状态机与生命周期

阶段严格单向：Received → Fetching → Tracing → Storing → Responding → Done
Failed 可由任一非终态进入且为吸收态；仅 Fetching 允许显式重试重入。
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from ..interfaces import ErrorCategory, InvalidTransition, StageError
from .artifact import StoreReference
from .events import InboundEvent
from .image import ImageReference


class SubmissionStage(str, Enum):
    """提交阶段枚举"""
    RECEIVED = "received"
    FETCHING = "fetching"
    TRACING = "tracing"
    STORING = "storing"
    RESPONDING = "responding"
    DONE = "done"
    FAILED = "failed"


STAGE_ORDER: list[SubmissionStage] = [
    SubmissionStage.RECEIVED,
    SubmissionStage.FETCHING,
    SubmissionStage.TRACING,
    SubmissionStage.STORING,
    SubmissionStage.RESPONDING,
    SubmissionStage.DONE,
]

_NEXT_STAGE: dict[SubmissionStage, SubmissionStage] = {
    current: following for current, following in zip(STAGE_ORDER, STAGE_ORDER[1:])
}

TERMINAL_STAGES = frozenset({SubmissionStage.DONE, SubmissionStage.FAILED})


class SubmissionFailure(BaseModel):
    """失败结果（detail 仅供日志，不对用户展示）"""
    category: ErrorCategory
    kind: str
    stage: SubmissionStage
    detail: str = ""

    @property
    def code(self) -> str:
        """形如 fetch.unreachable 的错误码"""
        return f"{self.category.value}.{self.kind}"


class Submission(BaseModel):
    """提交实体"""
    submission_id: str
    chat_id: int
    message_id: int
    image: ImageReference

    # 状态
    stage: SubmissionStage = SubmissionStage.RECEIVED
    history: list[SubmissionStage] = Field(default_factory=lambda: [SubmissionStage.RECEIVED])
    attempts: dict[str, int] = Field(default_factory=dict)

    # 结果
    reference: StoreReference | None = None
    failure: SubmissionFailure | None = None

    # 时间戳
    received_at: datetime = Field(default_factory=datetime.now)
    finished_at: datetime | None = None

    @staticmethod
    def make_id(chat_id: int, message_id: int) -> str:
        """确定性ID：同一条聊天消息重复投递时得到相同ID"""
        return f"{chat_id}-{message_id}"

    @classmethod
    def from_event(cls, event: InboundEvent) -> Submission:
        if event.image_reference is None:
            raise ValueError("入站事件不含图像引用")
        return cls(
            submission_id=cls.make_id(event.chat_id, event.message_id),
            chat_id=event.chat_id,
            message_id=event.message_id,
            image=event.image_reference,
        )

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    @property
    def succeeded(self) -> bool:
        return self.stage == SubmissionStage.DONE

    def advance(self, stage: SubmissionStage, *, retry: bool = False) -> None:
        """推进到下一阶段（retry=True 时允许 Fetching 重入）"""
        if self.is_terminal:
            raise InvalidTransition(f"[{self.submission_id}] 终态 {self.stage.value} 不可流转")

        if retry:
            if not (stage == SubmissionStage.FETCHING and self.stage == SubmissionStage.FETCHING):
                raise InvalidTransition(f"[{self.submission_id}] 仅允许重试 fetching 阶段")
        elif stage == SubmissionStage.FAILED or _NEXT_STAGE.get(self.stage) != stage:
            raise InvalidTransition(
                f"[{self.submission_id}] 非法流转: {self.stage.value} -> {stage.value}"
            )

        self.stage = stage
        self.history.append(stage)
        self.attempts[stage.value] = self.attempts.get(stage.value, 0) + 1

    def mark_stored(self, reference: StoreReference) -> None:
        """记录存储引用"""
        if self.stage != SubmissionStage.STORING:
            raise InvalidTransition(f"[{self.submission_id}] 非 storing 阶段不可记录引用")
        self.reference = reference

    def mark_done(self) -> None:
        """标记完成"""
        self.advance(SubmissionStage.DONE)
        self.finished_at = datetime.now()

    def mark_failed(self, error: StageError) -> None:
        """标记失败（吸收态）"""
        if self.is_terminal:
            raise InvalidTransition(f"[{self.submission_id}] 终态 {self.stage.value} 不可标记失败")
        self.failure = SubmissionFailure(
            category=error.category,
            kind=error.kind.value,
            stage=self.stage,
            detail=error.detail,
        )
        self.stage = SubmissionStage.FAILED
        self.history.append(SubmissionStage.FAILED)
        self.finished_at = datetime.now()
