"""展示用的格式化工具。"""

from __future__ import annotations

_UNITS = ("B", "KB", "MB", "GB")


def format_size(num_bytes: int) -> str:
    """以 1024 为底格式化字节数，保留一位小数，例如 ``1.5 KB``。"""

    if num_bytes <= 0:
        return "0 B"
    value = float(num_bytes)
    index = 0
    while value >= 1024 and index < len(_UNITS) - 1:
        value /= 1024
        index += 1
    text = f"{value:.1f}".rstrip("0").rstrip(".")
    return f"{text} {_UNITS[index]}"


def format_percent(ratio: float) -> str:
    return f"{round(ratio * 100)}%"
