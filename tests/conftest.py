"""测试共享 fixture - 包目录构造 + 假外部源

FakeSource 满足 ExternalSource 协议:
  - versions: 包名 -> 版本列表
  - archives: (包名, 版本) -> 归档源目录；fetch 时现场打包
  - 记录 list_versions / fetch 调用次数，用于断言缓存命中
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest
import yaml

from pkgrepo.store.archive import create_archive


def write_package(directory: Path, name: str, version: str, files: dict[str, str] | None = None) -> Path:
    """在 directory 下写出包清单和若干文件"""
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "package.yml").write_text(
        yaml.dump({"name": name, "version": version}), encoding="utf-8",
    )
    for rel, content in (files or {}).items():
        target = directory / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return directory


class FakeSource:
    """内存中的外部源"""

    def __init__(self, identity: str, work_dir: Path) -> None:
        self._identity = identity
        self.work_dir = work_dir
        self.versions: dict[str, list[str]] = {}
        self.archives: dict[tuple[str, str], Path] = {}
        self.list_calls = 0
        self.fetch_calls: list[tuple[str, str]] = []
        self.fail_fetch = False

    @property
    def identity(self) -> str:
        return self._identity

    def publish(self, name: str, version: str, files: dict[str, str] | None = None) -> None:
        src = write_package(self.work_dir / name / version, name, version, files)
        self.versions.setdefault(name, []).append(version)
        self.archives[(name, version)] = src

    def list_versions(self, name: str) -> list[str]:
        self.list_calls += 1
        return list(self.versions.get(name, []))

    def fetch(self, name: str, version: str, dest: Path) -> bool:
        self.fetch_calls.append((name, version))
        if self.fail_fetch or (name, version) not in self.archives:
            return False
        create_archive(self.archives[(name, version)], dest)
        return True


@pytest.fixture()
def make_source(tmp_path: Path) -> Callable[[str], FakeSource]:
    def _make(identity: str = "fake://upstream") -> FakeSource:
        return FakeSource(identity, tmp_path / "upstream" / identity.replace(":", "_").replace("/", "_"))
    return _make


@pytest.fixture()
def store_root(tmp_path: Path) -> Path:
    return tmp_path / "store"


@pytest.fixture()
def write_pkg() -> Callable[..., Path]:
    return write_package
