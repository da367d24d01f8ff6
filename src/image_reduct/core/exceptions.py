"""项目内使用的自定义异常定义。"""


class ImageReductError(Exception):
    """基础异常类型。"""


class InvalidConfigurationError(ImageReductError):
    """配置不合法时抛出。"""


class EncodeError(ImageReductError):
    """单张图片编码失败，``kind`` 标明失败类别。"""

    PLATFORM_ERROR = "platform-error"
    FORMAT_MISMATCH = "format-mismatch"

    def __init__(self, kind: str, detail: str) -> None:
        super().__init__(f"{kind}: {detail}")
        self.kind = kind
        self.detail = detail


class InvalidTransitionError(ImageReductError):
    """条目状态迁移不合法。"""


class BatchInProgressError(ImageReductError):
    """已有批处理正在运行时再次启动。"""


class ArchiveError(ImageReductError):
    """打包 ZIP 失败。"""


class PreviewReleasedError(ImageReductError):
    """预览资源被重复释放。"""


class OutputWriteError(ImageReductError):
    """输出写入失败。"""
