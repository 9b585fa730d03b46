"""镜像索引生成

把整个本地仓库导出为可直接托管的镜像（HttpMirrorSource / GithubSource /
DirectorySource 读取的就是这个布局）:

    <dest>/<name>/<version>.zip     每次都重新打包
    <dest>/<name>/versions.json     {version: {size, sha1, crc32}}
    <dest>/modules.json             [name, ...]
    <dest>/.gitignore               忽略版本目录，只保留归档和索引
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pkgrepo.store.repository import PackageStore

from pkgrepo.core.models import MirrorIndex
from pkgrepo.core.version import sort_versions
from pkgrepo.store.archive import create_archive, file_crc32, file_hash
from pkgrepo.store.sources import VERSIONS_FILE
from pkgrepo.utils.fs import clean_path, list_dirs
from pkgrepo.utils.json_io import save_json
from pkgrepo.utils.yaml_io import atomic_write

logger = logging.getLogger(__name__)

MODULES_FILE = "modules.json"
GITIGNORE_CONTENT = "/*/*/\n"


class MirrorIndexer:
    """为仓库中全部包版本生成镜像归档与索引"""

    def __init__(self, store: PackageStore) -> None:
        self.store = store

    def _modules(self, dest: Path) -> list[str]:
        modules = self.store.list_packages()
        # 目标目录位于仓库根目录下时，不把它当成包
        return [
            m for m in modules
            if (self.store.root / m).resolve() != dest.resolve()
        ]

    def _archive_version(self, module: str, version: str, dest: Path) -> dict[str, Any]:
        src = self.store.root / module / version
        zip_file = dest / module / f"{version}.zip"
        with self.store.version_lock(module, version):
            clean_path(zip_file)
            create_archive(src, zip_file)
        return {
            "size": zip_file.stat().st_size,
            "sha1": file_hash(zip_file, "sha1"),
            "crc32": file_crc32(zip_file),
        }

    def _archive_module(self, module: str, dest: Path) -> dict[str, dict[str, Any]]:
        versions = sort_versions(list_dirs(self.store.root / module), self.store.oracle)
        workers = min(self.store.max_workers, len(versions))
        if workers <= 1:
            stats = [self._archive_version(module, v, dest) for v in versions]
        else:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = [executor.submit(self._archive_version, module, v, dest) for v in versions]
                stats = [f.result() for f in futures]
        return dict(zip(versions, stats))

    def run(self, dest_dir: str | Path | None = None) -> MirrorIndex:
        dest = Path(dest_dir) if dest_dir is not None else self.store.root
        dest.mkdir(parents=True, exist_ok=True)

        result = MirrorIndex(dest_dir=dest, modules=self._modules(dest))
        for module in result.modules:
            logger.info("更新模块索引: %s", module)
            index = self._archive_module(module, dest)
            (dest / module).mkdir(parents=True, exist_ok=True)
            save_json(dest / module / VERSIONS_FILE, index)
            result.versions[module] = index

        save_json(dest / MODULES_FILE, result.modules)
        atomic_write(dest / ".gitignore", GITIGNORE_CONTENT)
        logger.info(
            "镜像索引完成: %s (%d 个模块, %d 个归档)",
            dest, len(result.modules), result.archive_count,
        )
        return result
