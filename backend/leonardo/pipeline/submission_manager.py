"""
提交管理器 - 进行中提交的登记/移除

职责：
1. 由入站事件创建提交（确定性ID）
2. 同一ID的提交在进行中时拒绝重复登记
3. 提交结束后移除，保证内存占用有界

测试要点：
- test_create_submission: 创建提交
- test_duplicate_in_flight: 进行中重复投递被拒绝
- test_discard: 移除后可再次登记
"""

from __future__ import annotations

import logging

from ..models import InboundEvent, Submission

logger = logging.getLogger(__name__)


class SubmissionManager:
    """进行中提交登记表"""

    def __init__(self):
        self._submissions: dict[str, Submission] = {}

    def create_submission(self, event: InboundEvent) -> Submission | None:
        """创建提交；同一ID仍在进行中时返回 None"""
        submission_id = Submission.make_id(event.chat_id, event.message_id)
        if submission_id in self._submissions:
            logger.info(f"[{submission_id}] 重复投递，提交仍在进行中，忽略")
            return None

        submission = Submission.from_event(event)
        self._submissions[submission_id] = submission
        return submission

    def discard(self, submission_id: str) -> Submission | None:
        """移除已结束的提交"""
        return self._submissions.pop(submission_id, None)

    def __len__(self) -> int:
        return len(self._submissions)
