"""单个条目的状态机。

    pending ──► processing ──► done
                   ▲    │
                   │    ▼
                   └── error

每次迁移都返回新的 Item，原对象保持不变。
"""

from __future__ import annotations

from dataclasses import replace

from image_reduct.core.exceptions import InvalidTransitionError
from image_reduct.core.models import (
    STATUS_DONE,
    STATUS_ERROR,
    STATUS_PENDING,
    STATUS_PROCESSING,
    EncodedOutput,
    Item,
)

ELIGIBLE_STATUSES = frozenset({STATUS_PENDING, STATUS_ERROR})

TRANSITIONS = {
    STATUS_PENDING: frozenset({STATUS_PROCESSING}),
    STATUS_PROCESSING: frozenset({STATUS_DONE, STATUS_ERROR}),
    STATUS_ERROR: frozenset({STATUS_PROCESSING}),
    STATUS_DONE: frozenset(),
}


def is_eligible(item: Item) -> bool:
    """pending 与 error 条目可被下一次运行处理。"""

    return item.status in ELIGIBLE_STATUSES


def _check(item: Item, target: str) -> None:
    if target not in TRANSITIONS[item.status]:
        raise InvalidTransitionError(f"条目 {item.id} 不能从 {item.status} 迁移到 {target}")


def begin(item: Item) -> Item:
    _check(item, STATUS_PROCESSING)
    # 重试时覆盖之前的错误信息，不保留历史。
    return replace(item, status=STATUS_PROCESSING, output=None, error_message=None)


def complete(item: Item, output: EncodedOutput) -> Item:
    _check(item, STATUS_DONE)
    return replace(item, status=STATUS_DONE, output=output, error_message=None)


def fail(item: Item, message: str) -> Item:
    _check(item, STATUS_ERROR)
    return replace(item, status=STATUS_ERROR, output=None, error_message=message or "转换失败")


def reset(item: Item) -> Item:
    """用户显式要求重新处理：done / error 回到 pending。"""

    if item.status not in {STATUS_DONE, STATUS_ERROR}:
        raise InvalidTransitionError(f"条目 {item.id} 处于 {item.status}，无法重置")
    return replace(item, status=STATUS_PENDING, output=None, error_message=None)
