"""支持的目标编码格式。"""

from __future__ import annotations

from dataclasses import dataclass

from image_reduct.core.exceptions import InvalidConfigurationError


@dataclass(frozen=True, slots=True)
class TargetFormat:
    """单个目标格式的描述。"""

    key: str
    pillow_format: str
    mime: str
    extension: str


WEBP = TargetFormat(key="webp", pillow_format="WEBP", mime="image/webp", extension="webp")
AVIF = TargetFormat(key="avif", pillow_format="AVIF", mime="image/avif", extension="avif")

# 通用兜底格式在前，高级格式在后。
TARGET_FORMATS = {fmt.key: fmt for fmt in (WEBP, AVIF)}
FALLBACK_FORMAT = WEBP
ADVANCED_FORMAT = AVIF


def get_format(key: str) -> TargetFormat:
    """按名称查找目标格式，大小写不敏感。"""

    fmt = TARGET_FORMATS.get(key.strip().lower())
    if fmt is None:
        raise InvalidConfigurationError(f"未知的目标格式: {key}")
    return fmt
