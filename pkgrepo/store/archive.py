"""包归档工具 - zip 打包、清单读取、安全解压、校验值"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
import zipfile
import zlib
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)

_HASH_CHUNK = 256 * 1024


class UnsafeArchiveError(zipfile.BadZipFile):
    """归档条目试图写到解压目录之外"""


def create_archive(src_dir: Path, dest: Path) -> Path:
    """把 src_dir 的全部内容打成 zip（条目路径相对 src_dir），先写临时文件再 rename"""
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(dest.parent), suffix=".zip.tmp")
    os.close(fd)
    try:
        with zipfile.ZipFile(tmp, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for item in sorted(src_dir.rglob("*")):
                arcname = item.relative_to(src_dir).as_posix()
                if item.is_dir():
                    zf.writestr(arcname + "/", b"")
                else:
                    zf.write(item, arcname)
        os.replace(tmp, dest)
    except Exception:
        Path(tmp).unlink(missing_ok=True)
        raise
    logger.debug("归档已创建: %s -> %s", src_dir, dest)
    return dest


def has_entry(zf: zipfile.ZipFile, name: str) -> bool:
    try:
        zf.getinfo(name)
    except KeyError:
        return False
    return True


def read_entry(zf: zipfile.ZipFile, name: str) -> bytes:
    """只读取单个条目内容，不解压其他文件"""
    with zf.open(name) as f:
        return f.read()


def _check_member(dest: Path, member: str) -> None:
    path = PurePosixPath(member)
    if path.is_absolute() or ".." in path.parts:
        raise UnsafeArchiveError(f"归档条目越界: {member}")
    if not (dest / member).resolve().is_relative_to(dest.resolve()):
        raise UnsafeArchiveError(f"归档条目越界: {member}")


def extract_all(zf: zipfile.ZipFile, dest: Path) -> None:
    """解压全部条目到 dest，拒绝绝对路径和 .. 条目

    Raises:
        UnsafeArchiveError: 存在越界条目（此时不会写入任何文件）
    """
    names = zf.namelist()
    for name in names:
        _check_member(dest, name)
    dest.mkdir(parents=True, exist_ok=True)
    zf.extractall(dest)


def file_hash(path: Path, algorithm: str = "sha1") -> str:
    h = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_HASH_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def file_crc32(path: Path) -> int:
    """整个归档文件的 CRC32（无符号）"""
    crc = 0
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_HASH_CHUNK), b""):
            crc = zlib.crc32(chunk, crc)
    return crc & 0xFFFFFFFF
