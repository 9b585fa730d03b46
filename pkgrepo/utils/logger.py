"""pkgrepo 日志配置

所有模块统一使用 logging.getLogger(__name__)，由入口调用 setup_logging 一次性配置。
支持人类可读文本与结构化 JSON 两种输出，JSON 格式会带上包名/版本等上下文字段。
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

# 通过 logger.info(..., extra={...}) 传入、需要出现在 JSON 日志中的上下文字段
CONTEXT_FIELDS = ("package", "version", "source", "path")

_ROOT_LOGGER = "pkgrepo"


class JSONFormatter(logging.Formatter):
    """结构化 JSON 日志格式器，便于镜像同步任务等流水线消费

    输出格式:
        {
            "timestamp": "2024-01-01T12:00:00+00:00",
            "level": "INFO",
            "logger": "pkgrepo.store.repository",
            "message": "...",
            "package": "foo",        (仅在 extra 中提供时)
            "version": "1.2.0",      (仅在 extra 中提供时)
            "exception": "..."       (仅在有异常时)
        }
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = str(value)
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    logger_name: str = _ROOT_LOGGER,
) -> logging.Logger:
    """配置 pkgrepo 日志器

    参数:
        level: 日志级别字符串（DEBUG, INFO, WARNING, ERROR, CRITICAL）
        json_output: 为 True 时输出 JSON 行
        logger_name: 要配置的日志器，默认只配置 pkgrepo 自身，不影响宿主程序的根日志器

    说明:
        - 输出到 stderr
        - 重复调用会先清理已有 handlers，避免重复输出
    """
    log = logging.getLogger(logger_name)
    reset_logging(logger_name)

    log.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stderr)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)-7s] %(name)s: %(message)s")
        )
    log.addHandler(handler)
    return log


def get_logger(name: str) -> logging.Logger:
    """获取指定名称的 logger 实例，通常传入 __name__"""
    return logging.getLogger(name)


def reset_logging(logger_name: str = _ROOT_LOGGER) -> None:
    """清理指定日志器上的所有 handlers，常用于测试"""
    log = logging.getLogger(logger_name)
    for handler in log.handlers[:]:
        log.removeHandler(handler)
        handler.close()
