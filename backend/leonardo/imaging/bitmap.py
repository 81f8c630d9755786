"""
位图预处理 - 解码、二值化、按描摹后端要求重新编码

二值化规则：
- 带透明通道：任何非完全透明像素 → 黑，透明 → 白
- 无透明通道（或完全不透明）：亮度低于阈值 → 黑，否则 → 白

输出对同样的输入字节完全确定。
"""

from __future__ import annotations

import io

from PIL import Image

from ..interfaces import TraceError, TraceErrorKind

_ALPHA_MODES = {"RGBA", "LA", "PA"}


def decode_image(data: bytes, max_pixels: int) -> Image.Image:
    """解码图像（失败抛 DecodeError）"""
    try:
        image = Image.open(io.BytesIO(data))
        if image.width * image.height > max_pixels:
            raise TraceError(
                TraceErrorKind.DECODE_ERROR,
                f"像素数超限: {image.width}x{image.height}",
            )
        image.load()
    except TraceError:
        raise
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
        raise TraceError(TraceErrorKind.DECODE_ERROR, f"{type(e).__name__}: {e}") from e
    return image


def _has_transparency(image: Image.Image) -> bool:
    if image.mode in _ALPHA_MODES:
        return True
    return image.mode == "P" and "transparency" in image.info


def binarize(image: Image.Image, threshold: int = 128) -> Image.Image:
    """二值化，返回 mode "1" 图像（黑色为描摹对象）"""
    ink = None
    if _has_transparency(image):
        alpha = image.convert("RGBA").getchannel("A")
        if alpha.getextrema() != (255, 255):
            ink = alpha.point(lambda a: 255 if a > 0 else 0)

    if ink is None:
        ink = image.convert("L").point(lambda v: 255 if v < threshold else 0)

    return ink.point(lambda v: 0 if v else 255).convert("1", dither=Image.Dither.NONE)


def encode_bitmap(image: Image.Image, bitmap_format: str) -> bytes:
    """编码为描摹后端期望的格式（png / pnm）"""
    buffer = io.BytesIO()
    if bitmap_format == "pnm":
        image.save(buffer, format="PPM")  # mode "1" 输出为 PBM(P4)
    elif bitmap_format == "png":
        image.save(buffer, format="PNG")
    else:
        raise ValueError(f"不支持的位图格式: {bitmap_format}")
    return buffer.getvalue()


def prepare_bitmap(
    data: bytes,
    bitmap_format: str = "png",
    threshold: int = 128,
    max_pixels: int = 16_000_000,
) -> bytes:
    """解码 → 二值化 → 编码"""
    image = decode_image(data, max_pixels)
    return encode_bitmap(binarize(image, threshold), bitmap_format)
