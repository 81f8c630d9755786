"""
pytest 配置与公共 fixtures

使用方式：
    def test_something(runtime_config, png_bytes):
        assert runtime_config.retries.retry_backoff_ms == 0

异步代码在普通测试函数中通过 asyncio.run 驱动。
"""

from __future__ import annotations

import asyncio
import hashlib
import io
import shutil
import tempfile
import time
from pathlib import Path
from typing import Generator

import pytest
from PIL import Image

from leonardo.config import RuntimeConfig, runtime_config as runtime_config_module
from leonardo.config.runtime_config import (
    ConcurrencyConfig,
    RetryConfig,
    StoreConfig,
    TimeoutConfig,
)
from leonardo.interfaces import IImageFetcher, ITracer, IVersionedStore
from leonardo.models import (
    EventKind,
    ImageFormat,
    ImageReference,
    InboundEvent,
    RawImage,
    StoreReference,
    TracedArtifact,
)

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git 不可用")


# ============================================================================
# 配置 Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def runtime_config(
    temp_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[RuntimeConfig, None, None]:
    """测试用运行期配置（短超时、零退避），替换全局配置"""
    config = RuntimeConfig(
        store=StoreConfig(repo_path=temp_dir / "repo"),
        timeouts=TimeoutConfig(
            fetch_sec=2,
            trace_sec=2,
            git_command_sec=10,
            send_sec=1,
            submission_sec=5,
        ),
        retries=RetryConfig(max_retries=2, retry_backoff_ms=0, retry_backoff_max_ms=0),
        concurrency=ConcurrencyConfig(max_workers=2, max_queue=4, trace_threads=2),
    )
    monkeypatch.setattr(runtime_config_module, "_config", config)
    yield config


# ============================================================================
# 文件 Fixtures
# ============================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """临时目录"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ============================================================================
# 图像 Fixtures
# ============================================================================

def make_png(size: int = 16, transparent: bool = True) -> bytes:
    """生成测试PNG：中心为黑色方块，其余透明（或白色）"""
    background = (0, 0, 0, 0) if transparent else (255, 255, 255, 255)
    image = Image.new("RGBA", (size, size), background)
    quarter = size // 4
    for x in range(quarter, size - quarter):
        for y in range(quarter, size - quarter):
            image.putpixel((x, y), (0, 0, 0, 255))
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def raw_png(png_bytes: bytes) -> RawImage:
    return RawImage.from_bytes(png_bytes, ImageFormat.PNG)


def image_event(chat_id: int = 100, message_id: int = 1, url: str = "https://files.test/a.png") -> InboundEvent:
    return InboundEvent(
        chat_id=chat_id,
        message_id=message_id,
        kind=EventKind.IMAGE,
        image_reference=ImageReference(url=url),
    )


# ============================================================================
# 桩实现
# ============================================================================

class CannedTracer(ITracer):
    """返回由位图摘要决定的SVG，可选延迟/抛错"""

    bitmap_format = "png"

    def __init__(self, delay: float = 0.0, error: Exception | None = None, output: str | None = None):
        self.delay = delay
        self.error = error
        self.output = output
        self.calls = 0

    def trace(self, bitmap: bytes) -> str:
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.output is not None:
            return self.output
        digest = hashlib.sha256(bitmap).hexdigest()
        return f'<svg xmlns="http://www.w3.org/2000/svg"><desc>{digest}</desc></svg>'


class ScriptedFetcher(IImageFetcher):
    """按脚本依次返回结果或抛出异常（脚本耗尽后重复最后一项）"""

    def __init__(self, *outcomes: RawImage | BaseException):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def fetch(self, reference: ImageReference, max_bytes: int) -> RawImage:
        outcome = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
        self.calls += 1
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RecordingStore(IVersionedStore):
    """内存存储：记录写入，带锁与可选延迟"""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.stored: list[TracedArtifact] = []
        self._lock = asyncio.Lock()

    async def store(self, artifact: TracedArtifact) -> StoreReference:
        async with self._lock:
            if self.delay:
                await asyncio.sleep(self.delay)
            self.stored.append(artifact)
            commit_id = hashlib.sha1(artifact.submission_id.encode()).hexdigest()
            return StoreReference(commit_id=commit_id, path=f"artifacts/{artifact.file_name}")
