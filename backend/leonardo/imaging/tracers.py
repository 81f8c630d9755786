"""
描摹后端 - vtracer（进程内）与 potrace（子进程），以及可选的 svg2vd 转换

依赖：
- vtracer: Python绑定，二值模式描摹
- potrace 可执行文件（路径由运行期配置指定）
- svg2vd 可执行文件（仅 output_format=vd 时需要）
"""

from __future__ import annotations

import subprocess

import vtracer

from ..config import get_config
from ..config.runtime_config import TraceConfig
from ..interfaces import ITracer, IVectorConverter, TraceError, TraceErrorKind


class VtracerTracer(ITracer):
    """vtracer 描摹后端"""

    bitmap_format = "png"

    def __init__(self, config: TraceConfig | None = None):
        self.config = config or get_config().trace

    def trace(self, bitmap: bytes) -> str:
        return vtracer.convert_raw_image_to_svg(
            bitmap,
            img_format="png",
            colormode="binary",
            mode=self.config.mode,
            filter_speckle=self.config.filter_speckle,
            corner_threshold=self.config.corner_threshold,
            length_threshold=self.config.length_threshold,
            splice_threshold=self.config.splice_threshold,
            path_precision=self.config.path_precision,
        )


class PotraceTracer(ITracer):
    """potrace 命令行封装（stdin 输入 PBM，stdout 输出 SVG）"""

    bitmap_format = "pnm"

    def __init__(self, exe_path: str | None = None, timeout: float | None = None):
        config = get_config()
        self.exe_path = exe_path or config.trace.potrace_path
        self.timeout = timeout or config.timeouts.trace_sec

    def trace(self, bitmap: bytes) -> str:
        cmd = [self.exe_path, "--svg", "--output", "-"]
        try:
            result = subprocess.run(
                cmd,
                input=bitmap,
                capture_output=True,
                timeout=self.timeout,
                check=True,
            )
        except FileNotFoundError as e:
            raise TraceError(TraceErrorKind.TRACE_FAILURE, f"potrace不存在: {self.exe_path}") from e
        except subprocess.TimeoutExpired as e:
            raise TraceError(TraceErrorKind.TIMEOUT, "potrace超时") from e
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or b"").decode("utf-8", errors="replace").strip()
            raise TraceError(TraceErrorKind.TRACE_FAILURE, f"potrace失败: {detail}") from e
        return result.stdout.decode("utf-8")


class VectorDrawableConverter(IVectorConverter):
    """svg2vd 命令行封装（stdin 输入 SVG，stdout 输出 VectorDrawable XML）"""

    extension = "xml"

    def __init__(self, exe_path: str | None = None, timeout: float | None = None):
        config = get_config()
        self.exe_path = exe_path or config.trace.svg2vd_path
        self.timeout = timeout or config.timeouts.trace_sec

    def convert(self, svg: str) -> bytes:
        cmd = [self.exe_path, "-i", "-", "-o", "-"]
        try:
            result = subprocess.run(
                cmd,
                input=svg.encode("utf-8"),
                capture_output=True,
                timeout=self.timeout,
                check=True,
            )
        except FileNotFoundError as e:
            raise TraceError(TraceErrorKind.TRACE_FAILURE, f"svg2vd不存在: {self.exe_path}") from e
        except subprocess.TimeoutExpired as e:
            raise TraceError(TraceErrorKind.TIMEOUT, "svg2vd超时") from e
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or b"").decode("utf-8", errors="replace").strip()
            raise TraceError(TraceErrorKind.TRACE_FAILURE, f"svg2vd失败: {detail}") from e
        if b"<vector" not in result.stdout:
            raise TraceError(TraceErrorKind.TRACE_FAILURE, "svg2vd输出不是VectorDrawable")
        return result.stdout


def create_tracer(config: TraceConfig | None = None) -> ITracer:
    """按配置创建描摹后端"""
    config = config or get_config().trace
    if config.backend == "vtracer":
        return VtracerTracer(config)
    if config.backend == "potrace":
        return PotraceTracer(exe_path=config.potrace_path)
    raise ValueError(f"未知的描摹后端: {config.backend}")


def create_converter(config: TraceConfig | None = None) -> IVectorConverter | None:
    """按配置创建输出转换器；输出SVG时返回 None"""
    config = config or get_config().trace
    if config.output_format == "svg":
        return None
    if config.output_format == "vd":
        return VectorDrawableConverter(exe_path=config.svg2vd_path)
    raise ValueError(f"未知的输出格式: {config.output_format}")
