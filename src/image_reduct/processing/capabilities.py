"""运行环境编码能力探测。"""

from __future__ import annotations

import io
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, Optional

from PIL import Image

from image_reduct.core.formats import ADVANCED_FORMAT, FALLBACK_FORMAT, TARGET_FORMATS, TargetFormat
from image_reduct.processing.encoder import EncodeRequest, EncoderPrimitive, PillowEncoder

LOGGER = logging.getLogger(__name__)

PROBE_QUALITY = 0.5


@dataclass(frozen=True, slots=True)
class CapabilityReport:
    """会话启动时探测一次的结果，作为配置向下传递。"""

    supported: frozenset[str]

    def supports(self, target: TargetFormat) -> bool:
        return target.key in self.supported

    @property
    def default_format(self) -> TargetFormat:
        if self.supports(ADVANCED_FORMAT):
            return ADVANCED_FORMAT
        return FALLBACK_FORMAT

    @property
    def available_formats(self) -> list[TargetFormat]:
        return [fmt for fmt in TARGET_FORMATS.values() if self.supports(fmt)]


class CapabilityProbe:
    """判断当前环境能否真正编码出指定格式。

    先做同步的编码再解码检查；若结论不明确（编码器缺失或报错），
    再在工作线程中通过真实编码原语编码并核对声明类型。
    只有某一策略明确确认产物就是请求的格式时才返回 True，
    探测中的任何异常都视为不支持。
    """

    def __init__(self, primitive: Optional[EncoderPrimitive] = None, timeout: float = 5.0) -> None:
        self.primitive = primitive or PillowEncoder()
        self.timeout = timeout
        self._cache: dict[str, bool] = {}
        self._lock = threading.Lock()

    def supports(self, target: TargetFormat) -> bool:
        with self._lock:
            cached = self._cache.get(target.key)
            if cached is None:
                cached = self._detect(target)
                self._cache[target.key] = cached
                LOGGER.info("编码能力探测：%s -> %s", target.key, "支持" if cached else "不支持")
            return cached

    def _detect(self, target: TargetFormat) -> bool:
        if self._check_sync(target):
            return True
        return self._check_async(target)

    def _check_sync(self, target: TargetFormat) -> Optional[bool]:
        """同步策略：直接编码 1x1 图片并重新打开检查格式。None 表示无法判断。"""

        buffer = io.BytesIO()
        try:
            Image.new("RGB", (1, 1)).save(buffer, format=target.pillow_format)
            buffer.seek(0)
            with Image.open(buffer) as img:
                produced = img.format
        except Exception as exc:  # noqa: BLE001
            LOGGER.debug("同步探测 %s 无结论: %s", target.key, exc)
            return None

        if produced == target.pillow_format:
            return True
        LOGGER.debug("同步探测 %s 产出了 %s", target.key, produced)
        return None

    def _check_async(self, target: TargetFormat) -> bool:
        """异步策略：在工作线程中走真实编码路径并检查声明类型。"""

        sample = io.BytesIO()
        Image.new("RGB", (1, 1)).save(sample, format="PNG")
        request = EncodeRequest(mime=target.mime, quality=PROBE_QUALITY)

        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="capability-probe")
        try:
            future = executor.submit(self.primitive.encode, sample.getvalue(), request)
            artifact = future.result(timeout=self.timeout)
        except Exception as exc:  # noqa: BLE001
            LOGGER.debug("异步探测 %s 失败: %s", target.key, exc)
            return False
        finally:
            executor.shutdown(wait=False)

        return artifact.mime == target.mime


def probe_capabilities(
    probe: Optional[CapabilityProbe] = None,
    formats: Optional[Iterable[TargetFormat]] = None,
) -> CapabilityReport:
    """对每个目标格式探测一次，返回不可变的能力报告。"""

    probe = probe or CapabilityProbe()
    candidates = list(formats) if formats is not None else list(TARGET_FORMATS.values())
    supported = frozenset(fmt.key for fmt in candidates if probe.supports(fmt))
    return CapabilityReport(supported=supported)
