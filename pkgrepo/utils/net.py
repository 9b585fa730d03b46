"""网络工具 - URL 安全校验与 HTTP 下载"""

from __future__ import annotations

import json
import logging
import shutil
import socket
import urllib.error
import urllib.request
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from pkgrepo.core.exceptions import FetchError, ValidationError

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES = frozenset(("http", "https"))

DEFAULT_TIMEOUT = 60
USER_AGENT = "pkgrepo/1.0"


def validate_url_scheme(url: str, *, context: str = "") -> None:
    """校验 URL 仅使用 http/https，防止 file:// 等非预期协议访问

    Raises:
        ValidationError: URL scheme 不在白名单内
    """
    parsed = urlparse(url)
    if parsed.scheme not in _ALLOWED_SCHEMES:
        label = f" ({context})" if context else ""
        raise ValidationError(
            f"不允许的 URL 协议 '{parsed.scheme}'{label}，"
            f"仅支持 http/https: {url}"
        )


def _is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, (socket.timeout, TimeoutError)):
        return True
    reason = getattr(exc, "reason", None)
    return isinstance(reason, (socket.timeout, TimeoutError))


def _open(url: str, timeout: float) -> Any:
    validate_url_scheme(url)
    req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    return urllib.request.urlopen(req, timeout=timeout)  # nosec B310


def http_get_json(url: str, *, timeout: float = DEFAULT_TIMEOUT) -> Any | None:
    """GET 并解析 JSON，404 返回 None

    Raises:
        FetchError: 其他 HTTP 错误、网络错误或内容不是合法 JSON；超时为可重试
    """
    try:
        with _open(url, timeout) as resp:
            return json.loads(resp.read().decode("utf-8"))
    except urllib.error.HTTPError as e:
        if e.code == 404:
            return None
        raise FetchError(f"请求失败: {url} - HTTP {e.code}", retryable=e.code >= 500) from e
    except (urllib.error.URLError, OSError) as e:
        raise FetchError(f"请求失败: {url} - {e}", retryable=_is_timeout(e)) from e
    except ValueError as e:
        raise FetchError(f"响应不是合法 JSON: {url} - {e}") from e


def download(
    url: str,
    dest: Path,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    chunk_size: int = 256 * 1024,
) -> None:
    """流式下载到 dest，失败时删除残留文件

    Raises:
        FetchError: HTTP 错误或网络错误；超时为可重试
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    logger.info("下载: %s -> %s", url, dest)
    try:
        with _open(url, timeout) as resp, open(dest, "wb") as f:
            shutil.copyfileobj(resp, f, chunk_size)
    except urllib.error.HTTPError as e:
        dest.unlink(missing_ok=True)
        raise FetchError(f"下载失败: {url} - HTTP {e.code}", retryable=e.code >= 500) from e
    except (urllib.error.URLError, OSError) as e:
        dest.unlink(missing_ok=True)
        raise FetchError(f"下载失败: {url} - {e}", retryable=_is_timeout(e)) from e
