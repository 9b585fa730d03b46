"""领域协议定义

包仓库依赖的两个外部能力：版本判定与外部包源。
使用 typing.Protocol 而非 ABC，测试中的假实现无需继承即可满足协议。
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable


class VersionOracle(Protocol):
    """版本判定协议

    satisfies 判断版本是否落在范围内；compare 给出全序，返回 -1 / 0 / 1。
    """

    def satisfies(self, version: str, pattern: str) -> bool:
        ...

    def compare(self, a: str, b: str) -> int:
        ...


@runtime_checkable
class ExternalSource(Protocol):
    """外部包源协议

    identity 是稳定的源标识，既是注册表的键，也是版本缓存的键。
    """

    @property
    def identity(self) -> str:
        ...

    def list_versions(self, name: str) -> list[str]:
        """列出该源发布的全部版本，包不存在时返回空列表"""
        ...

    def fetch(self, name: str, version: str, dest: Path) -> bool:
        """把指定版本的归档下载到 dest，成功返回 True"""
        ...
