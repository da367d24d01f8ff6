"""图片解码与基础预处理实现。"""

from __future__ import annotations

import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from image_reduct.core.exceptions import ImageReductError

LOGGER = logging.getLogger(__name__)

_ALPHA_MODES = {"RGBA", "LA", "PA"}


class ImageLoadingError(ImageReductError):
    """图片解码失败。"""


def load_image(data: bytes) -> Image.Image:
    """从字节解码单张图片并执行 EXIF 旋转与模式归一化。

    返回值为新的 Image 对象，调用者负责关闭。动图只取第一帧。
    """

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()

            # EXIF Orientation 校正
            img = ImageOps.exif_transpose(img)

            if img.mode not in {"RGB", "RGBA"}:
                img = _normalize_mode(img)

            return img.copy()
    except (UnidentifiedImageError, OSError) as exc:
        LOGGER.debug("无法识别图像数据: %s", exc)
        raise ImageLoadingError(f"无法加载图像: {exc}") from exc


def read_dimensions(data: bytes) -> tuple[int, int]:
    """只读取头部信息获得宽高，失败时抛出 ImageLoadingError。"""

    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.size
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageLoadingError(f"无法读取尺寸: {exc}") from exc


def _normalize_mode(img: Image.Image) -> Image.Image:
    """转换为编码器通用的 RGB / RGBA 模式，保留透明通道。"""

    if img.mode in _ALPHA_MODES or (img.mode == "P" and "transparency" in img.info):
        return img.convert("RGBA")

    # CMYK、L、P、I;16 等其他模式直接转换
    return img.convert("RGB")
