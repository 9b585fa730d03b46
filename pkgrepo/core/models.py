"""包仓库数据模型

数据类:
- Package: 由包清单（package.yml）描述的已安装包
- MirrorIndex: index_all 生成的镜像索引摘要
- LOCAL: list_versions 中标记"本地已安装"的哨兵值
"""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any

import yaml

from pkgrepo.core.exceptions import ManifestError, ValidationError
from pkgrepo.utils.yaml_io import parse_yaml, save_yaml

MANIFEST_FILENAME = "package.yml"
# 清单未写 version 时使用的版本标签
DEFAULT_VERSION = "last"


class _LocalMarker:
    """本地来源哨兵"""

    _instance: _LocalMarker | None = None

    def __new__(cls) -> _LocalMarker:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "LOCAL"

    def __bool__(self) -> bool:
        return True


LOCAL = _LocalMarker()


def check_path_component(value: str, field_name: str) -> str:
    """name / version 会直接拼进存储路径，必须是安全的单级目录名"""
    if (
        not value
        or value in (".", "..")
        or value.startswith(".")
        or "/" in value
        or "\\" in value
        or "\x00" in value
    ):
        raise ValidationError(f"非法的 {field_name}: {value!r}")
    return value


@dataclass(frozen=True)
class Package:
    """已安装包的不可变快照

    反映读取时刻磁盘上的清单内容，存储后续变更不会回写到已有对象。
    """

    name: str
    version: str
    meta: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self) -> None:
        check_path_component(self.name, "name")
        check_path_component(self.version, "version")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Package:
        name = data.get("name")
        if not name or not isinstance(name, str):
            raise ManifestError("包清单缺少 name 字段")
        version = data.get("version")
        if version is None or version == "":
            version = DEFAULT_VERSION
        elif not isinstance(version, str):
            # 未加引号的 1.10 会被 YAML 解析成浮点数 1.1
            raise ManifestError(f"包清单 version 必须是字符串（请加引号）: {version!r}")
        return cls(name=name, version=version, meta=dict(data))

    @classmethod
    def read(
        cls,
        source: str | Path | bytes | IO[Any],
        manifest_file: str = MANIFEST_FILENAME,
    ) -> Package:
        """从清单文件、包含清单的目录、字节串或流中读取包

        流的场景: 直接读取归档内的清单条目，不需要先解压到磁盘。

        Raises:
            FileNotFoundError: 路径形式的清单不存在
            ManifestError: 清单无法解析或缺少 name
        """
        try:
            if isinstance(source, (str, Path)):
                path = Path(source)
                if path.is_dir():
                    path = path / manifest_file
                with open(path, encoding="utf-8") as f:
                    data = parse_yaml(f)
            elif isinstance(source, bytes):
                data = parse_yaml(io.BytesIO(source))
            else:
                data = parse_yaml(source)
        except yaml.YAMLError as e:
            raise ManifestError(f"包清单解析失败: {e}") from e
        return cls.from_dict(data)

    def write(self, directory: Path, manifest_file: str = MANIFEST_FILENAME) -> Path:
        """把清单写入 directory，返回清单路径"""
        path = directory / manifest_file
        save_yaml(path, self.to_dict())
        return path

    def to_dict(self) -> dict[str, Any]:
        return {**self.meta, "name": self.name, "version": self.version}

    @property
    def key(self) -> tuple[str, str]:
        return (self.name, self.version)

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"


@dataclass
class MirrorIndex:
    """镜像索引摘要: 模块名 -> {版本: {size, sha1, crc32}}"""

    dest_dir: Path
    modules: list[str] = field(default_factory=list)
    versions: dict[str, dict[str, dict[str, Any]]] = field(default_factory=dict)

    @property
    def archive_count(self) -> int:
        return sum(len(v) for v in self.versions.values())
