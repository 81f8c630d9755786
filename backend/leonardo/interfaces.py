"""
模块接口契约 - 定义各模块的抽象接口与异常体系

设计原则：
1. 模块间通过接口通信，不直接依赖具体实现
2. 外部能力（聊天协议/矢量描摹/版本库）均以单一职责接口建模
3. 便于单元测试和stub替换

使用方式：
    from leonardo.interfaces import ITracer

    class CannedTracer(ITracer):
        def trace(self, bitmap: bytes) -> str:
            return "<svg/>"
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import (
        ImageReference,
        InboundEvent,
        OutboundReply,
        RawImage,
        StoreReference,
        Submission,
        TracedArtifact,
    )


# ============================================================================
# 图像获取 / 描摹接口
# ============================================================================

class IFileResolver(ABC):
    """聊天文件解析接口 - 将聊天平台的文件ID解析为可下载URL"""

    @abstractmethod
    async def resolve_file_url(self, file_id: str) -> str:
        """
        解析文件下载地址

        Args:
            file_id: 聊天平台文件ID

        Returns:
            可直接GET的下载URL（可能含凭据，禁止写入日志）

        Raises:
            ChannelError: 平台接口调用失败
        """
        ...


class IImageFetcher(ABC):
    """图像下载器接口"""

    @abstractmethod
    async def fetch(self, reference: ImageReference, max_bytes: int) -> RawImage:
        """
        下载图像

        Args:
            reference: 图像引用（URL / 文件ID / 原始字节 三选一）
            max_bytes: 允许的最大字节数

        Returns:
            完整接收且通过格式校验的 RawImage

        Raises:
            FetchError: Unreachable / Timeout / TooLarge / UnsupportedFormat
        """
        ...


class ITracer(ABC):
    """矢量描摹能力接口 - 位图字节输入，SVG文本输出

    实现为同步纯函数语义：同样的输入必须得到同样的输出。
    """

    # 描摹后端期望的位图编码（png / pnm）
    bitmap_format: str = "png"

    @abstractmethod
    def trace(self, bitmap: bytes) -> str:
        """
        执行描摹

        Args:
            bitmap: 已二值化的位图（编码见 bitmap_format）

        Returns:
            SVG 文本

        Raises:
            TraceError: 描摹失败或超时
        """
        ...


class IVectorConverter(ABC):
    """SVG 后处理转换接口（例如转为 Android VectorDrawable）"""

    # 转换结果的文件扩展名
    extension: str = "xml"

    @abstractmethod
    def convert(self, svg: str) -> bytes:
        """
        Raises:
            TraceError: 转换失败或超时
        """
        ...


# ============================================================================
# 存储 / 响应 / 聊天通道接口
# ============================================================================

class IVersionedStore(ABC):
    """版本化存储接口 - 单工作树，同一时刻仅允许一个写入者"""

    @abstractmethod
    async def store(self, artifact: TracedArtifact) -> StoreReference:
        """
        写入并提交产物

        同一 submission_id 重复写入时直接返回已有引用，不产生新提交。

        Raises:
            StoreError: WriteError / CommitError
        """
        ...


class IChatChannel(ABC):
    """聊天通道接口 - 入站事件源 + 出站消息汇"""

    @abstractmethod
    def events(self) -> AsyncIterator[InboundEvent]:
        """入站事件流（断线重连由通道自身负责）"""
        ...

    @abstractmethod
    async def send(self, reply: OutboundReply) -> None:
        """
        发送一条出站消息

        Raises:
            ChannelError: 发送失败
        """
        ...


class IResponder(ABC):
    """响应器接口"""

    @abstractmethod
    async def respond(
        self,
        submission: Submission,
        artifact: TracedArtifact | None = None,
    ) -> bool:
        """
        针对已有结果（存储引用或失败）的 Submission 发送且仅发送一条回复

        Returns:
            是否发送成功（失败只记录日志，不抛出）
        """
        ...

    @abstractmethod
    async def send_help(self, chat_id: int, reply_to: int | None = None) -> bool:
        """回复命令帮助"""
        ...

    @abstractmethod
    async def send_hint(self, chat_id: int, reply_to: int | None = None) -> bool:
        """提示用户发送图片"""
        ...


# ============================================================================
# 异常定义
# ============================================================================

class ErrorCategory(str, Enum):
    """错误大类（对应流水线阶段）"""
    FETCH = "fetch"
    TRACE = "trace"
    STORE = "store"
    PIPELINE = "pipeline"


class FetchErrorKind(str, Enum):
    UNREACHABLE = "unreachable"
    TIMEOUT = "timeout"
    TOO_LARGE = "too_large"
    UNSUPPORTED_FORMAT = "unsupported_format"


class TraceErrorKind(str, Enum):
    DECODE_ERROR = "decode_error"
    TRACE_FAILURE = "trace_failure"
    TIMEOUT = "timeout"


class StoreErrorKind(str, Enum):
    WRITE_ERROR = "write_error"
    COMMIT_ERROR = "commit_error"


class PipelineErrorKind(str, Enum):
    TIMEOUT = "timeout"
    INTERNAL = "internal"


class LeonardoError(Exception):
    """基础异常"""
    pass


class StageError(LeonardoError):
    """流水线阶段错误 - 携带大类与具体类型"""

    category: ErrorCategory

    def __init__(self, kind: Enum, detail: str = ""):
        self.kind = kind
        self.detail = detail
        message = f"{self.category.value}.{kind.value}"
        super().__init__(f"{message}: {detail}" if detail else message)

    @property
    def transient(self) -> bool:
        """是否为可重试的瞬时错误"""
        return False


class FetchError(StageError):
    """下载错误"""

    category = ErrorCategory.FETCH

    def __init__(self, kind: FetchErrorKind, detail: str = ""):
        super().__init__(kind, detail)

    @property
    def transient(self) -> bool:
        return self.kind in (FetchErrorKind.UNREACHABLE, FetchErrorKind.TIMEOUT)


class TraceError(StageError):
    """描摹错误"""

    category = ErrorCategory.TRACE

    def __init__(self, kind: TraceErrorKind, detail: str = ""):
        super().__init__(kind, detail)


class StoreError(StageError):
    """存储错误"""

    category = ErrorCategory.STORE

    def __init__(self, kind: StoreErrorKind, detail: str = ""):
        super().__init__(kind, detail)


class PipelineError(StageError):
    """流水线级错误（超时/未预期异常）"""

    category = ErrorCategory.PIPELINE

    def __init__(self, kind: PipelineErrorKind = PipelineErrorKind.INTERNAL, detail: str = ""):
        super().__init__(kind, detail)


class PipelineTimeout(PipelineError):
    """整体流水线超时"""

    def __init__(self, detail: str = ""):
        super().__init__(PipelineErrorKind.TIMEOUT, detail)


class GitCommandError(LeonardoError):
    """git 命令执行失败"""

    def __init__(self, args: list[str], detail: str = ""):
        self.git_args = args
        self.detail = detail
        super().__init__(f"git {' '.join(args)}: {detail}")


class ChannelError(LeonardoError):
    """聊天通道错误"""
    pass


class InvalidTransition(LeonardoError):
    """非法的阶段流转"""
    pass
