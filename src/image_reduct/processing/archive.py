"""将成功条目的输出打包为单个 ZIP。"""

from __future__ import annotations

import io
import logging
import zipfile
from typing import Iterable, Sequence

from image_reduct.core.exceptions import ArchiveError
from image_reduct.core.formats import get_format
from image_reduct.core.models import STATUS_DONE, Item
from image_reduct.core.output_manager import output_filename

LOGGER = logging.getLogger(__name__)

# 固定时间戳，保证相同输入得到相同字节。
_FIXED_DATE_TIME = (1980, 1, 1, 0, 0, 0)


def collect_entries(items: Iterable[Item]) -> list[tuple[str, bytes]]:
    """按插入顺序收集 done 条目的 (文件名, 字节)，文件名不做去重。"""

    entries: list[tuple[str, bytes]] = []
    for item in items:
        if item.status != STATUS_DONE or item.output is None:
            continue
        name = output_filename(item.name, get_format(item.output.format))
        entries.append((name, item.output.data))
    return entries


def bundle(entries: Sequence[tuple[str, bytes]], compresslevel: int = 6) -> bytes:
    """打包为 ZIP 字节。重名条目原样写入，由 ZIP 格式自身处理。"""

    buffer = io.BytesIO()
    seen: set[str] = set()
    try:
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=compresslevel) as archive:
            for name, data in entries:
                info = zipfile.ZipInfo(name, date_time=_FIXED_DATE_TIME)
                info.compress_type = zipfile.ZIP_DEFLATED
                info.external_attr = 0o644 << 16
                if name in seen:
                    LOGGER.warning("打包时出现重名条目: %s", name)
                seen.add(name)
                archive.writestr(info, data, compresslevel=compresslevel)
    except (OSError, ValueError, zipfile.BadZipFile) as exc:
        raise ArchiveError(f"打包失败: {exc}") from exc

    LOGGER.info("已打包 %d 个文件，共 %d 字节", len(entries), buffer.tell())
    return buffer.getvalue()
