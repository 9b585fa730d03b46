"""外部源版本列表缓存

职责:
- 以 (源标识, 包名) 为键缓存外部源的版本列表
- 10 分钟内的条目直接命中，不访问外部源
- 过期或缺失时实时拉取并覆盖条目，整体原子写回 cache.json

缓存文件格式:
    {
        "external": {
            "<source identity>": {
                "<package>": {"versions": ["1.0.0", ...], "time": 1700000000000}
            }
        }
    }

读取失败（不存在、损坏）一律从空缓存开始；写回失败只记日志，
当前进程内的内存缓存仍然有效。
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pkgrepo.core.protocols import ExternalSource
from pkgrepo.utils.json_io import load_json, save_json

logger = logging.getLogger(__name__)

DEFAULT_TTL = 600.0


@dataclass
class CacheLookup:
    """一次缓存查询的结果

    persisted 为 False 表示条目已刷新但写回磁盘失败（降级，不是错误）。
    """

    versions: list[str]
    from_cache: bool
    persisted: bool = True


class VersionCache:
    """持久化的版本列表缓存"""

    def __init__(
        self,
        path: Path,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.path = path
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._data: dict[str, dict[str, dict[str, Any]]] = self._load()

    def _load(self) -> dict[str, dict[str, dict[str, Any]]]:
        raw = load_json(self.path, default={})
        external = raw.get("external") if isinstance(raw, dict) else None
        if not isinstance(external, dict):
            return {}
        data: dict[str, dict[str, dict[str, Any]]] = {}
        for source_id, packages in external.items():
            if isinstance(packages, dict):
                data[source_id] = {
                    name: entry for name, entry in packages.items()
                    if isinstance(entry, dict)
                }
        logger.debug("版本缓存已加载: %s (%d 个源)", self.path, len(data))
        return data

    def _now_millis(self) -> int:
        return int(self._clock() * 1000)

    def _fresh_entry(self, source_id: str, name: str) -> list[str] | None:
        entry = self._data.get(source_id, {}).get(name)
        if entry is None:
            return None
        versions = entry.get("versions")
        fetched_at = entry.get("time")
        if not isinstance(versions, list) or not isinstance(fetched_at, (int, float)):
            return None
        if self._now_millis() - fetched_at >= self.ttl * 1000:
            return None
        return [str(v) for v in versions]

    def lookup(self, source: ExternalSource, name: str) -> CacheLookup:
        """返回 source 上 name 的版本列表，必要时实时拉取

        外部源抛出的异常原样向上传播，缓存保持不变。
        """
        source_id = source.identity
        with self._lock:
            cached = self._fresh_entry(source_id, name)
        if cached is not None:
            return CacheLookup(versions=cached, from_cache=True)

        logger.info("获取包版本列表: %s, 源: %s", name, source_id)
        versions = [str(v) for v in source.list_versions(name)]

        with self._lock:
            self._data.setdefault(source_id, {})[name] = {
                "versions": versions,
                "time": self._now_millis(),
            }
            persisted = self._save_locked()
        return CacheLookup(versions=list(versions), from_cache=False, persisted=persisted)

    def _save_locked(self) -> bool:
        try:
            save_json(self.path, {"external": self._data})
        except OSError as e:
            logger.warning("版本缓存写回失败，继续使用内存缓存: %s (%s)", self.path, e)
            return False
        return True

    def save(self) -> bool:
        """写回缓存文件，返回是否成功"""
        with self._lock:
            return self._save_locked()

    def invalidate(self, source_id: str | None = None, name: str | None = None) -> int:
        """清除缓存条目，返回清除的条数；不带参数时清空全部"""
        with self._lock:
            removed = 0
            for sid in list(self._data):
                if source_id is not None and sid != source_id:
                    continue
                packages = self._data[sid]
                for pkg in list(packages):
                    if name is None or pkg == name:
                        del packages[pkg]
                        removed += 1
                if not packages:
                    del self._data[sid]
            if removed:
                self._save_locked()
            return removed

    def entries(self) -> dict[str, dict[str, dict[str, Any]]]:
        """当前缓存内容的快照"""
        with self._lock:
            return {
                sid: {name: dict(entry) for name, entry in packages.items()}
                for sid, packages in self._data.items()
            }
