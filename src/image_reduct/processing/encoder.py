"""编码适配层：统一的请求/结果契约与格式回退检测。"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from PIL import Image

from image_reduct.core.config import BatchOptions
from image_reduct.core.exceptions import EncodeError
from image_reduct.core.models import EncodedOutput
from image_reduct.processing.image_loader import load_image, read_dimensions

LOGGER = logging.getLogger(__name__)

_RESAMPLING = getattr(Image, "Resampling", Image)
UNKNOWN_MIME = "application/octet-stream"

FORMAT_SAVE_PARAMS = {
    "WEBP": {"method": 4},
    "AVIF": {"speed": 6},
}


@dataclass(frozen=True, slots=True)
class EncodeRequest:
    """发给底层编码器的请求。quality 为实际编码质量 [0, 1]。"""

    mime: str
    quality: float
    max_width: Optional[int] = None
    max_height: Optional[int] = None


@dataclass(frozen=True, slots=True)
class EncodedArtifact:
    """底层编码器返回的字节及其声明的类型。"""

    data: bytes
    mime: str


class EncoderPrimitive(Protocol):
    def encode(self, data: bytes, request: EncodeRequest) -> EncodedArtifact:
        ...


DimensionReader = Callable[[bytes], tuple[int, int]]


def sniff_mime(data: bytes) -> str:
    """根据实际内容判断 MIME 类型，无法识别时返回 application/octet-stream。"""

    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
    except OSError:
        return UNKNOWN_MIME
    if not fmt:
        return UNKNOWN_MIME
    return Image.MIME.get(fmt.upper(), UNKNOWN_MIME)


class PillowEncoder:
    """基于 Pillow 的编码原语。

    与浏览器 canvas 行为一致：请求的编解码器不可用时静默改用
    ``fallback_format`` 编码，返回的 mime 反映实际产出的类型。
    """

    def __init__(self, fallback_format: str = "PNG") -> None:
        self.fallback_format = fallback_format
        # 插件按需加载，先注册全部格式以获得完整的 MIME 表。
        Image.init()
        self._mime_to_format = {mime: fmt for fmt, mime in Image.MIME.items()}

    def encode(self, data: bytes, request: EncodeRequest) -> EncodedArtifact:
        image = load_image(data)
        try:
            if request.max_width or request.max_height:
                bounds = (request.max_width or image.width, request.max_height or image.height)
                # thumbnail 只缩小不放大，并保持宽高比。
                image.thumbnail(bounds, _RESAMPLING.LANCZOS)

            pillow_format = self._mime_to_format.get(request.mime, request.mime.rsplit("/", 1)[-1].upper())
            buffer = io.BytesIO()
            try:
                image.save(
                    buffer,
                    format=pillow_format,
                    quality=int(round(request.quality * 100)),
                    **FORMAT_SAVE_PARAMS.get(pillow_format, {}),
                )
            except KeyError:
                LOGGER.debug("编码器不支持 %s，回退为 %s", pillow_format, self.fallback_format)
                buffer = io.BytesIO()
                image.save(buffer, format=self.fallback_format)

            produced = buffer.getvalue()
        finally:
            image.close()

        return EncodedArtifact(data=produced, mime=sniff_mime(produced))


class EncoderAdapter:
    """把底层编码原语包装成 ``encode(data, options) -> EncodedOutput``。

    失败时抛出 :class:`EncodeError`：

    * ``platform-error``：底层编码器自身报错，透传其消息；
    * ``format-mismatch``：编码器声称成功但产物类型与请求不符。

    成功后尽力解码产物获取宽高，失败时宽高记为 0。
    """

    def __init__(
        self,
        primitive: Optional[EncoderPrimitive] = None,
        dimension_reader: DimensionReader = read_dimensions,
    ) -> None:
        self.primitive = primitive or PillowEncoder()
        self.dimension_reader = dimension_reader

    @staticmethod
    def build_request(options: BatchOptions) -> EncodeRequest:
        return EncodeRequest(
            mime=options.target_format.mime,
            quality=options.encoder_quality,
            max_width=options.max_width,
            max_height=options.max_height,
        )

    def encode(self, data: bytes, options: BatchOptions) -> EncodedOutput:
        request = self.build_request(options)
        target = options.target_format

        try:
            artifact = self.primitive.encode(data, request)
        except EncodeError:
            raise
        except Exception as exc:  # noqa: BLE001
            detail = str(exc) or exc.__class__.__name__
            raise EncodeError(EncodeError.PLATFORM_ERROR, detail) from exc

        if artifact.mime != request.mime:
            raise EncodeError(
                EncodeError.FORMAT_MISMATCH,
                f"当前环境不支持 {target.key.upper()} 编码（请求 {request.mime}，实际得到 {artifact.mime}）",
            )

        width, height = self._read_dimensions(artifact.data)
        return EncodedOutput(
            data=artifact.data,
            format=target.key,
            width=width,
            height=height,
            original_size=len(data),
        )

    def _read_dimensions(self, data: bytes) -> tuple[int, int]:
        try:
            return self.dimension_reader(data)
        except Exception as exc:  # noqa: BLE001
            LOGGER.debug("dimension-unavailable: %s", exc)
            return 0, 0
