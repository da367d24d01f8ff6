"""批次统计：每次观察时从条目集合重新计算，不保存任何状态。"""

from __future__ import annotations

from typing import Iterable

from image_reduct.core.models import STATUS_DONE, STATUS_ERROR, STATUS_PENDING, BatchStats, Item


def compute_stats(items: Iterable[Item]) -> BatchStats:
    completed = 0
    pending = 0
    failed = 0
    original_total = 0
    compressed_total = 0

    for item in items:
        if item.status == STATUS_DONE and item.output is not None:
            completed += 1
            original_total += item.output.original_size
            compressed_total += item.output.compressed_size
        elif item.status == STATUS_PENDING:
            pending += 1
        elif item.status == STATUS_ERROR:
            failed += 1

    savings = 1 - compressed_total / original_total if original_total > 0 else 0.0
    return BatchStats(
        completed=completed,
        original_size=original_total,
        compressed_size=compressed_total,
        savings=savings,
        pending=pending,
        failed=failed,
    )
