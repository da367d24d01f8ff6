"""进度更新的数据模型。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True)
class ProgressUpdate:
    """批处理过程中的进度信息，每次条目状态变化发布一次。"""

    total: int
    completed: int
    item_id: Optional[str] = None
    item_status: Optional[str] = None
    message: Optional[str] = None
    status: str = "running"
