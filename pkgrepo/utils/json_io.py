"""JSON 文件读写 - 版本缓存与镜像索引共用

读取时对不存在和损坏的文件一律视为空；写入统一为带缩进的原子写入。
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pkgrepo.utils.yaml_io import atomic_write

logger = logging.getLogger(__name__)


def load_json(path: str | Path, default: Any = None) -> Any:
    """读取 JSON 文件，不存在/不可读/格式错误时返回 default"""
    p = Path(path)
    if not p.is_file():
        return default
    try:
        with open(p, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("JSON 文件读取失败，按空处理: %s (%s)", p, e)
        return default


def dump_json(data: Any) -> str:
    """序列化为带缩进的 JSON 文本"""
    return json.dumps(data, indent=4, ensure_ascii=False) + "\n"


def save_json(path: str | Path, data: Any) -> None:
    """原子写入 JSON 文件

    异常:
        OSError: 写入失败，由调用方决定是否吞掉
    """
    atomic_write(Path(path), dump_json(data))
