"""包仓库存储与解析

拆分说明:
- cache.py: 外部源版本列表缓存
- sources.py: 外部源适配器（GitHub / HTTP 镜像 / 目录镜像）
- archive.py: zip 打包、解压与校验值
- repository.py: 本地仓库（解析、安装、归档、部署）
- indexer.py: 镜像索引生成
"""

from pkgrepo.store.cache import CacheLookup, VersionCache
from pkgrepo.store.indexer import MirrorIndexer
from pkgrepo.store.repository import PackageStore, open_store
from pkgrepo.store.sources import DirectorySource, GithubSource, HttpMirrorSource, build_sources

__all__ = [
    "CacheLookup",
    "VersionCache",
    "MirrorIndexer",
    "PackageStore",
    "open_store",
    "DirectorySource",
    "GithubSource",
    "HttpMirrorSource",
    "build_sources",
]
