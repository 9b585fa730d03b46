"""外部包源适配器 - GitHub / HTTP 镜像 / 本地目录镜像

三种源读取的都是 index_all 生成的镜像布局:

    <base>/<name>/versions.json      {version: {size, sha1, crc32}}
    <base>/<name>/<version>.zip

职责:
- 列出某个包发布的版本
- 下载指定版本归档，并按 versions.json 中的 sha1 校验
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

from pkgrepo.core.exceptions import ChecksumError, ConfigError, FetchError
from pkgrepo.core.protocols import ExternalSource
from pkgrepo.store.archive import file_hash
from pkgrepo.utils.fs import copy_file
from pkgrepo.utils.json_io import load_json
from pkgrepo.utils.net import DEFAULT_TIMEOUT, download, http_get_json, validate_url_scheme

logger = logging.getLogger(__name__)

_GITHUB_RE = re.compile(r"^https?://github\.com/(?P<owner>[^/]+)/(?P<repo>[^/]+?)(?:\.git)?/?$")

VERSIONS_FILE = "versions.json"


def _versions_from_index(index: Any) -> list[str]:
    if isinstance(index, dict):
        return [str(v) for v in index]
    if isinstance(index, list):
        return [str(v) for v in index]
    return []


def _verify_sha1(path: Path, expected: str) -> None:
    actual = file_hash(path, "sha1")
    if actual != expected.lower():
        path.unlink(missing_ok=True)
        raise ChecksumError(f"校验和不匹配 {path}: 期望 {expected}, 实际 {actual}")
    logger.debug("校验和通过: %s", path.name)


class HttpMirrorSource:
    """HTTP 镜像源"""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        verify_checksums: bool = True,
        identity: str = "",
    ) -> None:
        validate_url_scheme(base_url, context="mirror base_url")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.verify_checksums = verify_checksums
        self._identity = identity or self.base_url
        self._index: dict[str, Any] = {}

    @property
    def identity(self) -> str:
        return self._identity

    def _url(self, *parts: str) -> str:
        return "/".join([self.base_url, *parts])

    def _load_index(self, name: str) -> Any:
        index = http_get_json(self._url(name, VERSIONS_FILE), timeout=self.timeout)
        self._index[name] = index
        return index

    def list_versions(self, name: str) -> list[str]:
        return _versions_from_index(self._load_index(name))

    def fetch(self, name: str, version: str, dest: Path) -> bool:
        """下载归档到 dest

        404 等不可重试的失败返回 False；超时/5xx 抛出可重试的 FetchError。
        """
        try:
            download(self._url(name, f"{version}.zip"), dest, timeout=self.timeout)
        except FetchError as e:
            if e.retryable:
                raise
            logger.warning("下载失败: %s@%s 源 %s: %s", name, version, self.identity, e)
            return False

        if self.verify_checksums:
            index = self._index.get(name)
            if index is None:
                index = self._load_index(name)
            expected = (index or {}).get(version, {}) if isinstance(index, dict) else {}
            if isinstance(expected, dict) and expected.get("sha1"):
                _verify_sha1(dest, str(expected["sha1"]))
        return True

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.identity!r})"


class GithubSource(HttpMirrorSource):
    """托管在 GitHub 仓库中的镜像，经 raw.githubusercontent.com 访问"""

    def __init__(self, repo_url: str, branch: str = "master", **kwargs: Any) -> None:
        m = _GITHUB_RE.match(repo_url)
        if m is None:
            raise ConfigError(f"无法识别的 GitHub 仓库地址: {repo_url}")
        raw = f"https://raw.githubusercontent.com/{m['owner']}/{m['repo']}/{branch}"
        kwargs.setdefault("identity", repo_url.rstrip("/"))
        super().__init__(raw, **kwargs)
        self.repo_url = repo_url
        self.branch = branch


class DirectorySource:
    """本地或共享盘上的镜像目录"""

    def __init__(self, path: str | Path, *, verify_checksums: bool = True) -> None:
        self.path = Path(path)
        self.verify_checksums = verify_checksums

    @property
    def identity(self) -> str:
        return f"dir:{self.path.resolve()}"

    def list_versions(self, name: str) -> list[str]:
        return _versions_from_index(load_json(self.path / name / VERSIONS_FILE, default={}))

    def fetch(self, name: str, version: str, dest: Path) -> bool:
        src = self.path / name / f"{version}.zip"
        if not src.is_file():
            logger.warning("镜像目录中不存在归档: %s", src)
            return False
        copy_file(src, dest)
        if self.verify_checksums:
            index = load_json(self.path / name / VERSIONS_FILE, default={})
            entry = index.get(version) if isinstance(index, dict) else None
            if isinstance(entry, dict) and entry.get("sha1"):
                _verify_sha1(dest, str(entry["sha1"]))
        return True

    def __repr__(self) -> str:
        return f"DirectorySource({str(self.path)!r})"


def build_source(entry: dict[str, Any], *, timeout: float, verify_checksums: bool) -> ExternalSource:
    """按配置项构造外部源

    支持:
        {"type": "github", "url": "https://github.com/org/repo", "branch": "master"}
        {"type": "http", "url": "https://mirror.example.com/pkgs"}
        {"type": "dir", "path": "/mnt/mirror"}
    """
    kind = entry.get("type", "")
    if kind == "github":
        return GithubSource(
            entry.get("url", ""), entry.get("branch", "master"),
            timeout=timeout, verify_checksums=verify_checksums,
        )
    if kind == "http":
        return HttpMirrorSource(
            entry.get("url", ""), timeout=timeout,
            verify_checksums=verify_checksums, identity=entry.get("identity", ""),
        )
    if kind == "dir":
        if not entry.get("path"):
            raise ConfigError("dir 类型的源必须指定 path")
        return DirectorySource(entry["path"], verify_checksums=verify_checksums)
    raise ConfigError(f"不支持的源类型: {kind!r}")


def build_sources(
    entries: list[dict[str, Any]],
    *,
    timeout: float = DEFAULT_TIMEOUT,
    verify_checksums: bool = True,
) -> list[ExternalSource]:
    return [
        build_source(entry, timeout=timeout, verify_checksums=verify_checksums)
        for entry in entries
    ]
