"""统一异常体系

所有业务异常继承 PkgRepoError。
注意"未找到匹配版本"和"归档里没有清单"都不是异常：前者返回 None，后者返回 False。
"""

from __future__ import annotations


class PkgRepoError(Exception):
    """包仓库基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(PkgRepoError):
    """配置文件内容无效"""

    code = "CONFIG_ERROR"


class ManifestError(PkgRepoError):
    """包清单存在但无法解析，或缺少必填字段"""

    code = "MANIFEST_ERROR"


class ValidationError(PkgRepoError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class FetchError(PkgRepoError):
    """外部源无法提供版本列表或归档

    retryable 为 True 表示网络超时等暂时性故障，调用方可稍后重试。
    """

    code = "FETCH_ERROR"

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class ChecksumError(FetchError):
    """下载的归档与镜像索引中的校验和不一致"""

    code = "CHECKSUM_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message, retryable=False)
