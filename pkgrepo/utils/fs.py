"""文件系统工具 - 扫描、清理、流式复制"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 256 * 1024


def list_dirs(path: Path) -> list[str]:
    """列出一级子目录名，忽略隐藏目录（暂存目录以 . 开头）"""
    if not path.is_dir():
        return []
    return sorted(
        d.name for d in path.iterdir()
        if d.is_dir() and not d.name.startswith(".")
    )


def clean_path(path: Path) -> None:
    """删除目录树或单个文件，不存在时什么也不做"""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


def ensure_parent(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def copy_file(src: Path, dst: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
    """按固定块大小流式复制单个文件，大文件不会整体读入内存"""
    ensure_parent(dst)
    with open(src, "rb") as fin, open(dst, "wb") as fout:
        shutil.copyfileobj(fin, fout, chunk_size)
    shutil.copymode(src, dst)


def copy_tree(src: Path, dst: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    """递归复制 src 下的全部内容到 dst，保持相对路径，返回复制的文件数"""
    dst.mkdir(parents=True, exist_ok=True)
    count = 0
    for item in sorted(src.rglob("*")):
        target = dst / item.relative_to(src)
        if item.is_dir():
            target.mkdir(parents=True, exist_ok=True)
        else:
            copy_file(item, target, chunk_size)
            count += 1
    return count
