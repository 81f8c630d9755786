"""
图像模型 - 图像引用与下载结果

ImageReference 在入站事件中创建；RawImage 仅在完整接收且通过校验后构造，
随后所有权移交给描摹阶段。
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, model_validator


class ImageFormat(str, Enum):
    """支持识别的图像格式"""
    PNG = "png"
    JPEG = "jpeg"
    WEBP = "webp"
    GIF = "gif"
    BMP = "bmp"


class ImageReference(BaseModel):
    """图像来源引用（三选一）"""
    url: str | None = None
    file_id: str | None = None      # 聊天平台文件ID，下载时解析
    data: bytes | None = None       # 已在内存中的原始字节
    declared_size: int | None = None  # 平台声明的文件大小（可选）

    @model_validator(mode="after")
    def _exactly_one_source(self) -> ImageReference:
        sources = [s for s in (self.url, self.file_id, self.data) if s is not None]
        if len(sources) != 1:
            raise ValueError("ImageReference需要且仅需要url/file_id/data之一")
        return self

    def describe(self) -> str:
        """日志用描述（不暴露URL中的凭据）"""
        if self.file_id is not None:
            return f"file_id={self.file_id}"
        if self.data is not None:
            return f"inline({len(self.data)} bytes)"
        return "url"


class RawImage(BaseModel):
    """已下载的图像字节"""
    data: bytes
    format: ImageFormat
    byte_length: int

    @classmethod
    def from_bytes(cls, data: bytes, image_format: ImageFormat) -> RawImage:
        return cls(data=data, format=image_format, byte_length=len(data))
