"""
图像下载器 - 有界时间、有界大小的流式下载

职责：
- 解析图像引用（URL / 聊天文件ID / 内联字节）
- 流式下载并在超限时立即中止，丢弃已接收部分
- 按文件头校验格式

测试要点：
- test_fetch_success: 正常下载
- test_fetch_http_error: HTTP错误 → Unreachable
- test_fetch_timeout: 超时 → Timeout
- test_fetch_too_large_midstream: 传输中超限 → TooLarge，缓冲区不超过上限
- test_fetch_unsupported_format: 格式校验
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from ..config import get_config
from ..interfaces import (
    ChannelError,
    FetchError,
    FetchErrorKind,
    IFileResolver,
    IImageFetcher,
)
from ..models import ImageReference, RawImage
from .formats import SNIFF_BYTES, parse_allowed_formats, sniff_format

logger = logging.getLogger(__name__)


class ImageFetcher(IImageFetcher):
    """基于 httpx 的图像下载器"""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        resolver: IFileResolver | None = None,
        timeout: float | None = None,
        allowed_formats: list[str] | None = None,
        chunk_size: int | None = None,
    ):
        config = get_config()
        self.timeout = timeout or config.timeouts.fetch_sec
        self.chunk_size = chunk_size or config.fetch.chunk_size
        self.allowed_formats = parse_allowed_formats(
            allowed_formats or config.fetch.allowed_formats
        )
        self.resolver = resolver
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=True,
        )
        self.peak_buffered = 0

    async def fetch(self, reference: ImageReference, max_bytes: int) -> RawImage:
        """下载图像"""
        if reference.data is not None:
            if len(reference.data) > max_bytes:
                raise FetchError(FetchErrorKind.TOO_LARGE, f"{len(reference.data)} > {max_bytes}")
            return self._build(reference.data)

        if reference.declared_size is not None and reference.declared_size > max_bytes:
            raise FetchError(
                FetchErrorKind.TOO_LARGE,
                f"声明大小 {reference.declared_size} > {max_bytes}",
            )

        try:
            data = await asyncio.wait_for(
                self._download(reference, max_bytes),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise FetchError(FetchErrorKind.TIMEOUT, f"超过{self.timeout}s") from e

        return self._build(data)

    async def _resolve_url(self, reference: ImageReference) -> str:
        if reference.url is not None:
            return reference.url
        if self.resolver is None:
            raise FetchError(FetchErrorKind.UNREACHABLE, "未配置文件解析器")
        try:
            return await self.resolver.resolve_file_url(reference.file_id)
        except ChannelError as e:
            raise FetchError(FetchErrorKind.UNREACHABLE, f"文件解析失败: {e}") from e

    async def _download(self, reference: ImageReference, max_bytes: int) -> bytes:
        url = await self._resolve_url(reference)

        try:
            async with self._client.stream("GET", url) as response:
                if response.status_code >= 400:
                    raise FetchError(FetchErrorKind.UNREACHABLE, f"HTTP {response.status_code}")

                declared = response.headers.get("content-length", "")
                if declared.isdigit() and int(declared) > max_bytes:
                    raise FetchError(FetchErrorKind.TOO_LARGE, f"Content-Length {declared} > {max_bytes}")

                buffer = bytearray()
                async for chunk in response.aiter_bytes(self.chunk_size):
                    # 先判断再写入，缓冲区不会超过上限
                    if len(buffer) + len(chunk) > max_bytes:
                        received = len(buffer) + len(chunk)
                        buffer.clear()
                        raise FetchError(
                            FetchErrorKind.TOO_LARGE,
                            f"传输中超限: 已接收 {received} > {max_bytes}",
                        )
                    buffer.extend(chunk)
                    self.peak_buffered = max(self.peak_buffered, len(buffer))
                return bytes(buffer)
        except httpx.TimeoutException as e:
            raise FetchError(FetchErrorKind.TIMEOUT, type(e).__name__) from e
        except httpx.HTTPError as e:
            # 不记录异常消息，URL可能含机器人凭据
            raise FetchError(FetchErrorKind.UNREACHABLE, type(e).__name__) from e

    def _build(self, data: bytes) -> RawImage:
        image_format = sniff_format(data[:SNIFF_BYTES])
        if image_format is None or image_format not in self.allowed_formats:
            raise FetchError(
                FetchErrorKind.UNSUPPORTED_FORMAT,
                image_format.value if image_format else "unknown",
            )
        return RawImage.from_bytes(data, image_format)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
