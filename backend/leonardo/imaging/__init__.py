"""
图像处理模块 - 下载、位图预处理与矢量描摹

子模块：
- fetcher: 流式图像下载
- formats: 文件头格式识别
- bitmap: 解码/二值化/编码
- trace_adapter: 描摹调用的超时与错误归一化
- tracers: vtracer / potrace 后端
"""

from .fetcher import ImageFetcher
from .formats import sniff_format
from .trace_adapter import TraceAdapter

__all__ = [
    "ImageFetcher",
    "TraceAdapter",
    "sniff_format",
]
