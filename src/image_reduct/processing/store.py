"""条目集合：唯一可信的数据源。

所有修改都在锁内构造新的元组再整体替换，观察者拿到的快照永远是完整的。
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Callable, Iterable, Optional

from image_reduct.core.models import Item, PreviewHandle, SourceFile

LOGGER = logging.getLogger(__name__)

PreviewFactory = Callable[[SourceFile], PreviewHandle]


def _new_item_id() -> str:
    return uuid.uuid4().hex


class ItemStore:
    """有序的条目集合，负责条目存在性与预览资源的生命周期。"""

    def __init__(self, preview_factory: PreviewFactory = PreviewHandle) -> None:
        self._preview_factory = preview_factory
        self._items: tuple[Item, ...] = ()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._items)

    def snapshot(self) -> tuple[Item, ...]:
        return self._items

    def get(self, item_id: str) -> Optional[Item]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def add(self, sources: Iterable[SourceFile]) -> list[Item]:
        """为每个源文件创建 pending 条目，追加到集合末尾。"""

        created = [
            Item(id=_new_item_id(), source=source, preview=self._preview_factory(source))
            for source in sources
        ]
        if created:
            with self._lock:
                self._items = self._items + tuple(created)
            LOGGER.info("新增 %d 个条目，共 %d 个", len(created), len(self._items))
        return created

    def replace(self, updated: Item) -> bool:
        """用新记录替换同 id 条目；条目已被移除时丢弃并返回 False。"""

        with self._lock:
            items = list(self._items)
            for index, item in enumerate(items):
                if item.id == updated.id:
                    items[index] = updated
                    self._items = tuple(items)
                    return True
        return False

    def remove(self, item_id: str) -> bool:
        with self._lock:
            target = None
            remaining = []
            for item in self._items:
                if item.id == item_id and target is None:
                    target = item
                else:
                    remaining.append(item)
            if target is None:
                return False
            self._items = tuple(remaining)
        target.preview.release()
        LOGGER.info("已移除条目 %s", target.name)
        return True

    def clear(self) -> int:
        with self._lock:
            removed = self._items
            self._items = ()
        for item in removed:
            item.preview.release()
        if removed:
            LOGGER.info("已清空 %d 个条目", len(removed))
        return len(removed)
