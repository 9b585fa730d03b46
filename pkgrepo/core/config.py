"""集中配置管理

包仓库根目录、缓存有效期、外部源列表等统一从这里取。
支持从 YAML 文件加载 + 编程式覆盖。
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from pkgrepo.core.exceptions import ConfigError
from pkgrepo.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)


@dataclass
class Config:
    """包仓库全局配置"""

    # 目录与文件
    store_dir: str = "packages"
    cache_file: str = "cache.json"      # 相对 store_dir
    manifest_file: str = "package.yml"

    # 版本列表缓存
    cache_ttl: float = 600.0            # 秒

    # 外部源，如 [{"type": "github", "url": "https://github.com/org/repo"}]
    sources: list[dict[str, Any]] = field(default_factory=list)

    # 执行
    max_workers: int = 4
    fetch_timeout: float = 60.0
    copy_chunk_size: int = 256 * 1024
    verify_checksums: bool = True

    # 日志
    log_level: str = "INFO"
    log_json: bool = False

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.cache_ttl < 0:
            raise ConfigError(f"cache_ttl 不能为负数: {self.cache_ttl}")
        if self.max_workers < 1:
            raise ConfigError(f"max_workers 至少为 1: {self.max_workers}")
        if not isinstance(self.sources, list):
            raise ConfigError("sources 必须是列表")

    @classmethod
    def from_file(cls, path: str = "configs/pkgrepo.yml") -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        data = load_yaml(path)
        if not data:
            return cls()
        known = {f.name for f in cls.__dataclass_fields__.values()}
        matched = {k: v for k, v in data.items() if k in known and k != "extra"}
        extra = {k: v for k, v in data.items() if k not in known}
        try:
            cfg = cls(**matched)
        except TypeError as e:
            raise ConfigError(f"配置文件内容无效: {path} - {e}") from e
        cfg.extra = extra
        return cfg

    def to_dict(self) -> dict:
        return asdict(self)


# 全局单例，首次 import 时不加载文件；由入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = "configs/pkgrepo.yml") -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current


def reset_config() -> None:
    """恢复为未初始化状态（测试用）"""
    global _current  # noqa: PLW0603
    _current = None
