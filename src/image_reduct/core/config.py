"""批处理任务的配置模型。"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from image_reduct.core.exceptions import InvalidConfigurationError
from image_reduct.core.formats import TargetFormat

# 界面上的 100% 对应编码器的 0.9，避免被当作无损编码。
QUALITY_CEILING = 0.9
DEFAULT_QUALITY = 1.0


def to_encoder_quality(quality: float) -> float:
    """将界面质量值 [0, 1] 映射到编码器实际使用的质量值。"""

    return quality * QUALITY_CEILING


@dataclass(frozen=True, slots=True)
class BatchOptions:
    """单次运行中对所有条目统一生效的编码参数。"""

    target_format: TargetFormat
    quality: float = DEFAULT_QUALITY
    max_width: Optional[int] = None
    max_height: Optional[int] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.quality <= 1.0:
            raise InvalidConfigurationError(f"质量必须位于 0~1 之间: {self.quality}")
        for label, value in (("max_width", self.max_width), ("max_height", self.max_height)):
            if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value <= 0):
                raise InvalidConfigurationError(f"{label} 必须为正整数: {value}")

    @property
    def encoder_quality(self) -> float:
        return to_encoder_quality(self.quality)


@dataclass(slots=True)
class OutputConfig:
    """输出目录与冲突策略配置。"""

    output_dir: Path
    conflict_strategy: str = "rename"  # overwrite | skip | rename


@dataclass(slots=True)
class SessionConfig:
    """会话级配置：输入扫描与调度节奏。"""

    allow_recursive: bool = True
    pause_seconds: float = 0.02
    probe_timeout: float = 5.0
