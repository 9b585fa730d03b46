"""本地包仓库

目录布局:
    <root>/<name>/<version>/        已安装包（含 package.yml）
    <root>/<name>/<version>.zip     archive_package 生成的归档（一经生成不再重建）
    <root>/cache.json               外部源版本列表缓存

核心逻辑:
  - list_versions() 扫描本地版本目录，可选合并外部源版本；同一版本号本地优先
  - resolve() 在本地+外部版本中选满足范围的最高版本，外部版本先下载安装
  - install_from_archive() / install_from_dir() 先在隐藏暂存目录中准备好内容，
    再整体替换目标目录（清空重装，不做增量合并）
  - 同一 (name, version) 的安装串行执行

用法:
    from pkgrepo.store import PackageStore, GithubSource

    store = PackageStore("packages", sources=[GithubSource("https://github.com/org/repo")])
    pkg = store.resolve("foo", "^1.0.0")
    if pkg is not None:
        store.deploy_to(pkg, "vendor")
"""

from __future__ import annotations

import functools
import logging
import os
import tempfile
import threading
import time
import zipfile
import zlib
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from pathlib import Path
from typing import Union

from pkgrepo.core.config import Config, get_config, init_config
from pkgrepo.core.exceptions import FetchError, ManifestError, ValidationError
from pkgrepo.core.models import (
    LOCAL,
    MANIFEST_FILENAME,
    MirrorIndex,
    Package,
    _LocalMarker,
    check_path_component,
)
from pkgrepo.core.protocols import ExternalSource, VersionOracle
from pkgrepo.core.version import SemverOracle, max_version, sort_versions
from pkgrepo.store.archive import create_archive, extract_all, has_entry, read_entry
from pkgrepo.store.cache import DEFAULT_TTL, VersionCache
from pkgrepo.store.sources import build_sources
from pkgrepo.utils.fs import DEFAULT_CHUNK_SIZE, clean_path, copy_tree, list_dirs
from pkgrepo.utils.logger import setup_logging

logger = logging.getLogger(__name__)

CACHE_FILENAME = "cache.json"

VersionOrigin = Union[_LocalMarker, ExternalSource]


class KeyedLocks:
    """按 (name, version) 分配的可重入锁"""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, str], threading.RLock] = {}

    def get(self, key: tuple[str, str]) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, key: tuple[str, str]) -> Iterator[None]:
        with self.get(key):
            yield


class PackageStore:
    """本地包仓库，协调版本缓存、外部源与安装/归档/部署"""

    def __init__(
        self,
        root: str | Path,
        *,
        sources: list[ExternalSource] | None = None,
        oracle: VersionOracle | None = None,
        cache_file: str = CACHE_FILENAME,
        cache_ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
        manifest_file: str = MANIFEST_FILENAME,
        max_workers: int = 4,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.oracle: VersionOracle = oracle or SemverOracle()
        self.cache = VersionCache(self.root / cache_file, ttl=cache_ttl, clock=clock)
        self.manifest_file = manifest_file
        self.max_workers = max(1, max_workers)
        self.chunk_size = chunk_size
        self.externals: dict[str, ExternalSource] = {}
        self._install_locks = KeyedLocks()
        for source in sources or []:
            self.add_source(source)

    @classmethod
    def from_config(cls, cfg: Config | None = None) -> PackageStore:
        """按配置构造仓库及其外部源"""
        cfg = cfg or get_config()
        sources = build_sources(
            cfg.sources, timeout=cfg.fetch_timeout, verify_checksums=cfg.verify_checksums,
        )
        return cls(
            cfg.store_dir,
            sources=sources,
            cache_file=cfg.cache_file,
            cache_ttl=cfg.cache_ttl,
            manifest_file=cfg.manifest_file,
            max_workers=cfg.max_workers,
            chunk_size=cfg.copy_chunk_size,
        )

    # ========================================================================
    # 外部源
    # ========================================================================

    def add_source(self, source: ExternalSource) -> None:
        """注册外部源，相同 identity 后注册的覆盖先注册的"""
        if source.identity in self.externals:
            logger.info("外部源已替换: %s", source.identity)
        self.externals[source.identity] = source

    def remove_source(self, identity: str) -> bool:
        return self.externals.pop(identity, None) is not None

    def _list_one(self, source: ExternalSource, name: str) -> list[str]:
        try:
            return self.cache.lookup(source, name).versions
        except FetchError as e:
            logger.warning("外部源不可用，跳过: %s (%s)", source.identity, e)
            return []

    def _external_listings(self, name: str) -> list[tuple[ExternalSource, list[str]]]:
        sources = list(self.externals.values())
        if len(sources) <= 1 or self.max_workers == 1:
            return [(s, self._list_one(s, name)) for s in sources]
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(sources))) as executor:
            futures = [executor.submit(self._list_one, s, name) for s in sources]
            return [(s, f.result()) for s, f in zip(sources, futures)]

    # ========================================================================
    # 查询
    # ========================================================================

    def package_dir(self, name: str) -> Path:
        return self.root / check_path_component(name, "name")

    def version_dir(self, name: str, version: str) -> Path:
        return self.package_dir(name) / check_path_component(version, "version")

    def version_lock(self, name: str, version: str) -> threading.RLock:
        """同一 (name, version) 的安装、归档、部署共用的锁"""
        return self._install_locks.get((name, version))

    def list_packages(self) -> list[str]:
        """列出本地已有的包名"""
        return list_dirs(self.root)

    def list_versions(
        self, name: str, include_external: bool = False,
    ) -> dict[str, VersionOrigin]:
        """版本号 -> 来源（LOCAL 或提供该版本的外部源）

        目录名即版本号。外部源的版本只在本地没有同名版本时加入。
        """
        versions: dict[str, VersionOrigin] = {
            v: LOCAL for v in list_dirs(self.package_dir(name))
        }
        if include_external:
            for source, listed in self._external_listings(name):
                for version in listed:
                    versions.setdefault(version, source)
        return versions

    def local_versions(self, name: str) -> list[str]:
        """本地已安装版本，从低到高"""
        return sort_versions(list_dirs(self.package_dir(name)), self.oracle)

    def latest_local(self, name: str) -> str | None:
        return max_version(list_dirs(self.package_dir(name)), self.oracle)

    def get_package(self, name: str, version: str) -> Package | None:
        """读取已安装包的清单，不存在返回 None

        Raises:
            ManifestError: 清单存在但无法解析
        """
        manifest = self.version_dir(name, version) / self.manifest_file
        if not manifest.is_file():
            return None
        return Package.read(manifest)

    # ========================================================================
    # 解析
    # ========================================================================

    def resolve(self, name: str, pattern: str, *, local_only: bool = False) -> Package | None:
        """在本地与外部源中选出满足 pattern 的最高版本

        版本号与 pattern 字面相等或落在范围内即视为匹配。
        最高版本来自外部源时先下载安装；下载失败直接报错，不回退到次高版本。

        返回:
            Package，无匹配版本时返回 None

        Raises:
            FetchError: 外部源无法提供最高匹配版本
            ManifestError: 选中的本地版本目录缺少或含有无效的包清单
        """
        candidates = self.list_versions(name, include_external=not local_only)
        matched = [
            v for v in candidates
            if v == pattern or self.oracle.satisfies(v, pattern)
        ]
        if not matched:
            logger.info("未找到匹配版本: %s@%s", name, pattern)
            return None

        best = max(matched, key=functools.cmp_to_key(self.oracle.compare))
        origin = candidates[best]
        if origin is not LOCAL:
            self._download_and_install(name, best, origin)

        package = self.get_package(name, best)
        if package is None:
            raise ManifestError(f"版本目录缺少包清单: {self.version_dir(name, best)}")
        return package

    def _download_and_install(self, name: str, version: str, source: ExternalSource) -> Package:
        logger.info("下载包 %s@%s, 源: %s", name, version, source.identity)
        zip_file = self.package_dir(name) / f"{version}.zip"
        zip_file.parent.mkdir(parents=True, exist_ok=True)
        with self._install_locks.hold((name, version)):
            try:
                if not source.fetch(name, version, zip_file):
                    raise FetchError(f"外部源 {source.identity} 无法提供 {name}@{version}")
                package = self._install_archive(zip_file)
            finally:
                zip_file.unlink(missing_ok=True)
        if package is None:
            raise FetchError(f"外部源 {source.identity} 返回的 {name}@{version} 不是有效的包归档")
        if package.key != (name, version):
            raise FetchError(
                f"外部源 {source.identity} 返回的归档清单为 {package}，与请求的 {name}@{version} 不符"
            )
        return package

    # ========================================================================
    # 安装
    # ========================================================================

    def _make_staging(self, package: Package) -> Path:
        parent = self.package_dir(package.name)
        parent.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=f".{package.version}.", suffix=".staging", dir=parent))

    def _swap_into_place(self, staging: Path, dest: Path) -> None:
        """用暂存目录整体替换目标；目标原为文件时直接删除，替换失败时恢复原目录"""
        if dest.is_dir() and not dest.is_symlink():
            trash = Path(tempfile.mkdtemp(prefix=f".{dest.name}.", suffix=".old", dir=dest.parent))
            os.replace(dest, trash / dest.name)
            try:
                os.replace(staging, dest)
            except OSError:
                os.replace(trash / dest.name, dest)
                clean_path(trash)
                clean_path(staging)
                raise
            clean_path(trash)
        else:
            clean_path(dest)
            os.replace(staging, dest)

    def _install_archive(self, archive: Path) -> Package | None:
        try:
            zf = zipfile.ZipFile(archive)
        except (zipfile.BadZipFile, OSError) as e:
            logger.warning("无法打开归档，跳过安装: %s (%s)", archive, e)
            return None

        with zf:
            if not has_entry(zf, self.manifest_file):
                logger.info("归档中没有 %s，跳过安装: %s", self.manifest_file, archive)
                return None
            try:
                package = Package.read(read_entry(zf, self.manifest_file))
            except (ManifestError, ValidationError, zipfile.BadZipFile, zlib.error) as e:
                logger.warning("归档清单无效，跳过安装: %s (%s)", archive, e)
                return None

            dest = self.version_dir(package.name, package.version)
            with self._install_locks.hold(package.key):
                staging = self._make_staging(package)
                try:
                    extract_all(zf, staging)
                except (zipfile.BadZipFile, zlib.error) as e:
                    clean_path(staging)
                    logger.warning("归档内容无效，跳过安装: %s (%s)", archive, e)
                    return None
                except BaseException:
                    clean_path(staging)
                    raise
                self._swap_into_place(staging, dest)

        logger.info("已安装 %s -> %s", package, dest)
        return package

    def install_from_archive(self, archive: str | Path) -> bool:
        """从 zip 归档安装，归档中没有包清单时返回 False 且不改动仓库"""
        return self._install_archive(Path(archive)) is not None

    def install_from_dir(self, source_dir: str | Path) -> Package | None:
        """从散装目录安装，目录中没有包清单时什么也不做并返回 None

        Raises:
            ManifestError: 清单存在但无法解析
        """
        src = Path(source_dir)
        manifest = src / self.manifest_file
        if not manifest.is_file():
            logger.debug("目录中没有 %s，跳过安装: %s", self.manifest_file, src)
            return None

        package = Package.read(manifest)
        dest = self.version_dir(package.name, package.version)
        if dest.exists() and dest.resolve() == src.resolve():
            return package

        with self._install_locks.hold(package.key):
            staging = self._make_staging(package)
            try:
                count = copy_tree(src, staging, self.chunk_size)
            except BaseException:
                clean_path(staging)
                raise
            self._swap_into_place(staging, dest)

        logger.info("已安装 %s -> %s (%d 个文件)", package, dest, count)
        return package

    # ========================================================================
    # 归档 / 部署 / 镜像索引
    # ========================================================================

    def archive_package(self, package: Package) -> Path | None:
        """返回包版本的 zip 归档，已存在则直接复用"""
        path = self.version_dir(package.name, package.version)
        if not path.is_dir():
            return None
        zip_file = path.with_name(f"{package.version}.zip")
        with self._install_locks.hold(package.key):
            if zip_file.is_file():
                return zip_file
            create_archive(path, zip_file)
        logger.info("已归档 %s -> %s", package, zip_file)
        return zip_file

    def deploy_to(
        self,
        package: Package,
        target_dir: str | Path,
        *,
        use_latest: bool = False,
    ) -> Path | None:
        """把包复制到 target_dir/<name>/，先清空旧内容

        use_latest=True 时忽略 package.version，部署本地已安装的最高版本。

        返回:
            部署目录；要部署的版本本地不存在时返回 None
        """
        target = Path(target_dir)
        target.mkdir(parents=True, exist_ok=True)

        version = self.latest_local(package.name) if use_latest else package.version
        if version is None:
            logger.warning("本地没有已安装的 %s，无法部署", package.name)
            return None
        src = self.version_dir(package.name, version)
        if not src.is_dir():
            logger.warning("本地不存在 %s@%s，无法部署", package.name, version)
            return None

        dest = target / package.name
        with self._install_locks.hold((package.name, version)):
            clean_path(dest)
            count = copy_tree(src, dest, self.chunk_size)
        logger.info("已部署 %s@%s -> %s (%d 个文件)", package.name, version, dest, count)
        return dest

    def index_all(self, dest_dir: str | Path | None = None) -> MirrorIndex:
        """为全部包版本重新生成镜像归档与索引，见 MirrorIndexer"""
        from pkgrepo.store.indexer import MirrorIndexer
        return MirrorIndexer(self).run(dest_dir)


def open_store(config_path: str = "configs/pkgrepo.yml") -> PackageStore:
    """加载配置、初始化日志并打开包仓库"""
    cfg = init_config(config_path)
    setup_logging(cfg.log_level, json_output=cfg.log_json)
    return PackageStore.from_config(cfg)
