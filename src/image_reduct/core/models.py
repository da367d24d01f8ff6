"""核心数据模型定义。"""

from __future__ import annotations

import io
import logging
import threading
from dataclasses import dataclass
from typing import Optional

from PIL import Image

from image_reduct.core.exceptions import PreviewReleasedError

LOGGER = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_DONE = "done"
STATUS_ERROR = "error"

ITEM_STATUSES = (STATUS_PENDING, STATUS_PROCESSING, STATUS_DONE, STATUS_ERROR)

PREVIEW_SIZE = (160, 160)


def compute_savings(original_size: int, compressed_size: int) -> float:
    """压缩节省比例，截断为非负；原始大小为 0 时返回 0。"""

    if original_size <= 0:
        return 0.0
    return max(0.0, 1.0 - compressed_size / original_size)


@dataclass(frozen=True, slots=True)
class SourceFile:
    """用户提交的原始图片字节。"""

    name: str
    data: bytes

    @property
    def original_size(self) -> int:
        return len(self.data)


class PreviewHandle:
    """仅用于展示的缩略图资源，生命周期内只能释放一次。"""

    def __init__(self, source: SourceFile, size: tuple[int, int] = PREVIEW_SIZE) -> None:
        self._source = source
        self._size = size
        self._image: Optional[Image.Image] = None
        self._released = False
        self._lock = threading.Lock()

    @property
    def released(self) -> bool:
        return self._released

    def thumbnail(self) -> Optional[Image.Image]:
        """按需生成缩略图；源数据无法解码时返回 None。"""

        with self._lock:
            if self._released:
                raise PreviewReleasedError(f"预览已释放: {self._source.name}")
            if self._image is None:
                try:
                    with Image.open(io.BytesIO(self._source.data)) as img:
                        img.thumbnail(self._size)
                        self._image = img.copy()
                except OSError as exc:
                    LOGGER.debug("无法生成预览 %s: %s", self._source.name, exc)
                    return None
            return self._image

    def release(self) -> None:
        with self._lock:
            if self._released:
                raise PreviewReleasedError(f"预览被重复释放: {self._source.name}")
            self._released = True
            if self._image is not None:
                self._image.close()
                self._image = None


@dataclass(frozen=True, slots=True)
class EncodedOutput:
    """编码成功后的产物。"""

    data: bytes
    format: str
    width: int
    height: int
    original_size: int

    @property
    def compressed_size(self) -> int:
        return len(self.data)

    @property
    def savings(self) -> float:
        return compute_savings(self.original_size, self.compressed_size)


@dataclass(frozen=True, slots=True)
class Item:
    """一张提交的图片及其处理记录。更新时整体替换，不原地修改。"""

    id: str
    source: SourceFile
    preview: PreviewHandle
    status: str = STATUS_PENDING
    output: Optional[EncodedOutput] = None
    error_message: Optional[str] = None

    def __post_init__(self) -> None:
        if self.status not in ITEM_STATUSES:
            raise ValueError(f"未知的条目状态: {self.status}")
        if (self.output is not None) != (self.status == STATUS_DONE):
            raise ValueError("output 仅在 done 状态下存在")
        if (self.error_message is not None) != (self.status == STATUS_ERROR):
            raise ValueError("error_message 仅在 error 状态下存在")

    @property
    def name(self) -> str:
        return self.source.name

    @property
    def original_size(self) -> int:
        return self.source.original_size


@dataclass(frozen=True, slots=True)
class BatchStats:
    """由条目集合派生的统计数据。"""

    completed: int
    original_size: int
    compressed_size: int
    savings: float
    pending: int = 0
    failed: int = 0

    @property
    def saved_bytes(self) -> int:
        return self.original_size - self.compressed_size
