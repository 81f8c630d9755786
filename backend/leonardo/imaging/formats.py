"""
图像格式识别 - 基于文件头魔数，不信任 Content-Type
"""

from __future__ import annotations

from ..models import ImageFormat

# 识别所需的最少字节数
SNIFF_BYTES = 12

_SIGNATURES: list[tuple[bytes, ImageFormat]] = [
    (b"\x89PNG\r\n\x1a\n", ImageFormat.PNG),
    (b"\xff\xd8\xff", ImageFormat.JPEG),
    (b"GIF87a", ImageFormat.GIF),
    (b"GIF89a", ImageFormat.GIF),
    (b"BM", ImageFormat.BMP),
]


def sniff_format(head: bytes) -> ImageFormat | None:
    """根据文件头判断图像格式，无法识别返回None"""
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return ImageFormat.WEBP
    for signature, image_format in _SIGNATURES:
        if head.startswith(signature):
            return image_format
    return None


def parse_allowed_formats(names: list[str]) -> frozenset[ImageFormat]:
    """解析配置中的允许格式（jpg视为jpeg）"""
    aliases = {"jpg": "jpeg"}
    return frozenset(ImageFormat(aliases.get(n.lower(), n.lower())) for n in names)
