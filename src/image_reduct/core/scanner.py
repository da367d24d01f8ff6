"""输入文件扫描与筛选逻辑。"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Iterator

IMAGE_EXTENSIONS = {
    ".jpg",
    ".jpeg",
    ".png",
    ".gif",
    ".webp",
    ".bmp",
    ".tif",
    ".tiff",
    ".avif",
}


def _iter_candidate_files(path: Path, recursive: bool) -> Iterator[Path]:
    """遍历路径下的所有文件。"""

    if path.is_file():
        yield path
        return

    if not path.is_dir():
        return

    iterator = path.rglob("*") if recursive else path.glob("*")
    for candidate in iterator:
        if candidate.is_file():
            yield candidate


def is_image_path(path: Path) -> bool:
    return path.suffix.lower() in IMAGE_EXTENSIONS


def collect_image_paths(sources: Iterable[Path], *, recursive: bool = True) -> list[Path]:
    """扫描输入路径，返回去重后的图片文件列表。

    每个输入路径内部按名称排序，不同输入路径之间保持调用方给出的顺序。
    """

    collected: list[Path] = []
    seen_paths: set[Path] = set()

    for root in sources:
        resolved_root = root.expanduser().resolve()
        found = [
            candidate
            for candidate in _iter_candidate_files(resolved_root, recursive)
            if is_image_path(candidate) and candidate not in seen_paths
        ]
        found.sort(key=lambda x: str(x).lower())
        for candidate in found:
            seen_paths.add(candidate)
            collected.append(candidate)

    return collected
