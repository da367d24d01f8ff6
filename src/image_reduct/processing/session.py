"""会话门面：把能力探测、条目集合、调度与导出串在一起，供 CLI / GUI 使用。"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from image_reduct.core.config import DEFAULT_QUALITY, BatchOptions, SessionConfig
from image_reduct.core.exceptions import ImageReductError, InvalidConfigurationError
from image_reduct.core.formats import TargetFormat, get_format
from image_reduct.core.models import STATUS_DONE, BatchStats, Item, SourceFile
from image_reduct.core.output_manager import (
    DestinationDecision,
    OutputManager,
    archive_filename,
    output_filename,
)
from image_reduct.core.scanner import collect_image_paths
from image_reduct.processing.archive import bundle, collect_entries
from image_reduct.processing.capabilities import CapabilityProbe, CapabilityReport, probe_capabilities
from image_reduct.processing.encoder import EncoderAdapter
from image_reduct.processing.lifecycle import is_eligible, reset
from image_reduct.processing.pipeline import BatchScheduler, ProgressCallback
from image_reduct.processing.stats import compute_stats
from image_reduct.processing.store import ItemStore

LOGGER = logging.getLogger(__name__)


class BatchSession:
    """一次会话内的全部批处理状态。

    能力报告在构造时给定且不再变化；编码参数在每次 ``run`` 时传入。
    """

    def __init__(
        self,
        capabilities: CapabilityReport,
        *,
        config: Optional[SessionConfig] = None,
        adapter: Optional[EncoderAdapter] = None,
        store: Optional[ItemStore] = None,
        progress_callback: ProgressCallback = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or SessionConfig()
        self.capabilities = capabilities
        self.store = store or ItemStore()
        self.scheduler = BatchScheduler(
            self.store,
            adapter,
            pause_seconds=self.config.pause_seconds,
            progress_callback=progress_callback,
            sleep=sleep,
        )

    @classmethod
    def start(cls, config: Optional[SessionConfig] = None, **kwargs) -> "BatchSession":
        """探测一次编码能力并创建会话。"""

        config = config or SessionConfig()
        capabilities = probe_capabilities(CapabilityProbe(timeout=config.probe_timeout))
        return cls(capabilities, config=config, **kwargs)

    # ---------------------- 配置 ---------------------- #

    def make_options(
        self,
        *,
        quality: float = DEFAULT_QUALITY,
        target_format: Union[str, TargetFormat, None] = None,
        max_width: Optional[int] = None,
        max_height: Optional[int] = None,
    ) -> BatchOptions:
        """构建编码参数；未指定格式时使用探测得到的默认格式。"""

        if target_format is None:
            fmt = self.capabilities.default_format
        elif isinstance(target_format, str):
            fmt = get_format(target_format)
        else:
            fmt = target_format

        if not self.capabilities.supports(fmt):
            raise InvalidConfigurationError(f"当前环境不支持 {fmt.key.upper()} 编码")

        return BatchOptions(target_format=fmt, quality=quality, max_width=max_width, max_height=max_height)

    # ---------------------- 条目管理 ---------------------- #

    @property
    def items(self) -> tuple[Item, ...]:
        return self.store.snapshot()

    def submit(self, sources: Iterable[SourceFile]) -> list[Item]:
        return self.store.add(sources)

    def submit_paths(self, paths: Iterable[Path]) -> list[Item]:
        """扫描路径中的图片文件并加入会话，读取失败的文件记录警告后跳过。"""

        sources: list[SourceFile] = []
        for path in collect_image_paths(paths, recursive=self.config.allow_recursive):
            try:
                data = path.read_bytes()
            except OSError as exc:
                LOGGER.warning("无法读取 %s: %s", path, exc)
                continue
            sources.append(SourceFile(name=path.name, data=data))
        return self.submit(sources)

    def remove(self, item_id: str) -> bool:
        return self.store.remove(item_id)

    def clear(self) -> int:
        return self.store.clear()

    def reset(self, item_id: str) -> Item:
        """把 done / error 条目重新置为 pending，下次运行会再次处理。"""

        item = self._require(item_id)
        updated = reset(item)
        self.store.replace(updated)
        return updated

    # ---------------------- 运行与统计 ---------------------- #

    def has_eligible(self) -> bool:
        return any(is_eligible(item) for item in self.items)

    def run(self, options: Optional[BatchOptions] = None) -> list[str]:
        return self.scheduler.run(options or self.make_options())

    def stats(self) -> BatchStats:
        return compute_stats(self.items)

    # ---------------------- 导出 ---------------------- #

    def build_archive(self) -> bytes:
        entries = collect_entries(self.items)
        if not entries:
            raise ImageReductError("没有可打包的已完成条目")
        return bundle(entries)

    def export_item(self, item_id: str, output_manager: OutputManager) -> DestinationDecision:
        item = self._require(item_id)
        if item.status != STATUS_DONE or item.output is None:
            raise ImageReductError(f"条目尚未完成转换: {item.name}")
        filename = output_filename(item.name, get_format(item.output.format))
        return output_manager.save_bytes(filename, item.output.data)

    def export_archive(
        self,
        output_manager: OutputManager,
        now: Optional[datetime] = None,
    ) -> DestinationDecision:
        data = self.build_archive()
        return output_manager.save_bytes(archive_filename(now), data)

    def _require(self, item_id: str) -> Item:
        item = self.store.get(item_id)
        if item is None:
            raise ImageReductError(f"条目不存在: {item_id}")
        return item
