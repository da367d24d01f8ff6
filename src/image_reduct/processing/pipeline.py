"""批处理调度：按插入顺序逐个转换待处理条目。"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from image_reduct.core.config import BatchOptions
from image_reduct.core.exceptions import BatchInProgressError, EncodeError
from image_reduct.core.models import Item
from image_reduct.core.progress import ProgressUpdate
from image_reduct.processing.encoder import EncoderAdapter
from image_reduct.processing.lifecycle import begin, complete, fail, is_eligible
from image_reduct.processing.store import ItemStore

LOGGER = logging.getLogger(__name__)

DEFAULT_PAUSE_SECONDS = 0.02

ProgressCallback = Optional[Callable[[ProgressUpdate], None]]


class BatchScheduler:
    """严格串行的批处理调度器。

    每次只处理一个条目，处理完成并发布状态后短暂停顿再继续，
    给界面留出刷新的机会，同时把内存占用限制在单张图片以内。
    单个条目失败不影响其他条目，运行本身没有整体成败。
    """

    def __init__(
        self,
        store: ItemStore,
        adapter: Optional[EncoderAdapter] = None,
        *,
        pause_seconds: float = DEFAULT_PAUSE_SECONDS,
        progress_callback: ProgressCallback = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.adapter = adapter or EncoderAdapter()
        self.pause_seconds = pause_seconds
        self.progress_callback = progress_callback
        self._sleep = sleep
        self._run_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._run_lock.locked()

    def run(self, options: BatchOptions) -> list[str]:
        """处理所有 pending / error 条目，返回实际处理过的条目 id。"""

        if not self._run_lock.acquire(blocking=False):
            raise BatchInProgressError("已有批处理正在运行")
        try:
            return self._run(options)
        finally:
            self._run_lock.release()

    def _run(self, options: BatchOptions) -> list[str]:
        selected = [item.id for item in self.store.snapshot() if is_eligible(item)]
        total = len(selected)
        LOGGER.info(
            "开始转换 %d 个条目：格式 %s，质量 %.2f",
            total,
            options.target_format.key,
            options.encoder_quality,
        )

        visited: list[str] = []
        if total == 0:
            self._emit_progress(0, 0, message="没有需要处理的图片", status="finished")
            return visited

        completed = 0
        for item_id in selected:
            item = self.store.get(item_id)
            processing = begin(item) if item is not None else None
            if processing is None or not self.store.replace(processing):
                LOGGER.info("条目 %s 已被移除，跳过", item_id)
                completed += 1
                continue

            visited.append(item_id)
            self._emit_progress(total, completed, processing, f"开始处理 {item.name}")

            result = self._process(processing, options)
            completed += 1
            if self.store.replace(result):
                self._emit_progress(total, completed, result, _describe(result))
            else:
                LOGGER.info("条目 %s 在转换期间被移除，丢弃结果", item.name)

            # 显式的让出点：给观察者绘制中间进度的机会。
            if self.pause_seconds > 0:
                self._sleep(self.pause_seconds)

        self._emit_progress(total, completed, message="处理完成", status="finished")
        return visited

    def _process(self, item: Item, options: BatchOptions) -> Item:
        try:
            output = self.adapter.encode(item.source.data, options)
        except EncodeError as exc:
            LOGGER.warning("转换失败 %s: %s", item.name, exc)
            return fail(item, str(exc))
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("转换 %s 时发生异常", item.name)
            return fail(item, str(exc) or exc.__class__.__name__)
        return complete(item, output)

    def _emit_progress(
        self,
        total: int,
        completed: int,
        item: Optional[Item] = None,
        message: Optional[str] = None,
        status: str = "running",
    ) -> None:
        if not self.progress_callback:
            return
        self.progress_callback(
            ProgressUpdate(
                total=total,
                completed=completed,
                item_id=item.id if item else None,
                item_status=item.status if item else None,
                message=message,
                status=status,
            )
        )


def _describe(item: Item) -> str:
    if item.output is not None:
        return f"完成 {item.name}（节省 {item.output.savings:.0%}）"
    return f"失败 {item.name}: {item.error_message}"
