"""输出命名、写入与冲突处理模块。"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from itertools import count
from pathlib import Path, PurePath
from typing import Optional

from image_reduct.core.config import OutputConfig
from image_reduct.core.exceptions import InvalidConfigurationError, OutputWriteError
from image_reduct.core.formats import TargetFormat

LOGGER = logging.getLogger(__name__)

ARCHIVE_PREFIX = "imagereduct_"
ARCHIVE_EXTENSION = "zip"
CONFLICT_STRATEGIES = {"overwrite", "skip", "rename"}


def output_filename(original_name: str, target: TargetFormat) -> str:
    """保留原文件名主干，替换为目标格式扩展名。"""

    stem = PurePath(original_name).stem or original_name
    return f"{stem}.{target.extension}"


def archive_filename(now: Optional[datetime] = None) -> str:
    """ZIP 文件名：固定前缀 + YYYYMMDDHHmm（UTC）。"""

    moment = now or datetime.now(timezone.utc)
    return f"{ARCHIVE_PREFIX}{moment:%Y%m%d%H%M}.{ARCHIVE_EXTENSION}"


@dataclass(slots=True)
class DestinationDecision:
    """封装输出文件决策。"""

    destination: Optional[Path]
    action: str
    note: Optional[str] = None


class OutputManager:
    """负责处理输出目录、冲突策略与字节写入。"""

    def __init__(self, config: OutputConfig) -> None:
        if config.conflict_strategy not in CONFLICT_STRATEGIES:
            raise InvalidConfigurationError(f"未知的冲突策略: {config.conflict_strategy}")
        self.config = config
        self.output_dir = config.output_dir.resolve()
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def decide_destination(self, filename: str) -> DestinationDecision:
        """根据冲突策略确定输出路径。"""

        destination = self.output_dir / PurePath(filename).name

        if not destination.exists():
            return DestinationDecision(destination=destination, action="write")

        strategy = self.config.conflict_strategy
        existing_msg = f"目标已存在: {destination.name}"

        if strategy == "overwrite":
            return DestinationDecision(destination=destination, action="overwrite", note=existing_msg)
        if strategy == "skip":
            return DestinationDecision(destination=destination, action="skip", note=existing_msg)

        new_destination = self._generate_renamed_path(destination)
        return DestinationDecision(
            destination=new_destination,
            action="rename",
            note=f"{existing_msg} -> 重命名为 {new_destination.name}",
        )

    def save_bytes(self, filename: str, data: bytes) -> DestinationDecision:
        """写入字节内容；skip 策略下不写入并返回决策。"""

        decision = self.decide_destination(filename)
        if decision.action == "skip":
            LOGGER.info("跳过输出（已存在）：%s", decision.destination)
            return decision

        assert decision.destination is not None
        try:
            decision.destination.write_bytes(data)
        except OSError as exc:
            raise OutputWriteError(f"写入文件失败: {decision.destination}") from exc
        LOGGER.debug("已写入 %s (%d 字节)", decision.destination, len(data))
        return decision

    def _generate_renamed_path(self, destination: Path) -> Path:
        """在 rename 策略下生成新的文件名。"""

        stem = destination.stem
        suffix = destination.suffix

        for idx in count(1):
            candidate = destination.with_name(f"{stem}_{idx}{suffix}")
            if not candidate.exists():
                return candidate

        # 理论上不会执行到此处
        return destination
