"""
日志

- 写入 settings.LOG_PATH/system.log，每天午夜轮转，保留 30 天；DEBUG=true 时同时输出到控制台
- LOG_FORMAT=json|plain（默认 plain），LOG_LEVEL 控制级别
- 每条日志附带当前请求上下文：request_id、用户、IP、路径
- extra 一律经 logger_extra 处理，Flag 尝试值、密码、令牌会被替换为 ***
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

from django.conf import settings

from apps.common.utils.request_context import get_request_context

SENSITIVE_KEYS = frozenset({"password", "token", "access", "refresh", "flag", "flag_submitted", "attempt", "flag_hash"})
MASK = "***"

_configured = False


def _timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")


class JSONLogFormatter(logging.Formatter):
    """一行一个 JSON 对象；上下文字段为空时省略"""

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_request_context()
        entry = {
            "timestamp": _timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": ctx["request_id"],
            "user_id": ctx["user_id"],
            "username": ctx["username"],
            "ip_address": ctx["ip"],
            "request_path": ctx["path"],
        }
        entry = {k: v for k, v in entry.items() if v not in ("", None)}
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class PlainLogFormatter(logging.Formatter):
    """
    2026-03-01 16:57:25 INFO apps.submissions.services Flag 提交完成 [alice|3|127.0.0.1|/api/challenges/7/submit/]
    """

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_request_context()
        tag = "|".join(
            "-" if value in ("", None) else str(value)
            for value in (ctx["username"], ctx["user_id"], ctx["ip"], ctx["path"])
        )
        line = f"{_timestamp(record)} {record.levelname} {record.name} {record.getMessage()} [{tag}]"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class SafeTimedRotatingFileHandler(logging.handlers.TimedRotatingFileHandler):
    """Windows 下日志文件被占用时跳过本次轮转"""

    def doRollover(self):
        try:
            super().doRollover()
        except PermissionError:
            pass


def configure_logging(force: bool = False, *, level: Optional[int] = None, log_file_path: Optional[str] = None) -> None:
    global _configured
    if _configured and not force:
        return

    if level is None:
        level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    if log_file_path is None:
        log_dir = Path(getattr(settings, "LOG_PATH", "logs"))
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file_path = str(log_dir / "system.log")
    formatter = JSONLogFormatter() if os.getenv("LOG_FORMAT", "plain").lower() == "json" else PlainLogFormatter()

    handlers: list[logging.Handler] = [
        SafeTimedRotatingFileHandler(log_file_path, when="midnight", backupCount=30, encoding="utf-8", delay=True)
    ]
    handlers[0].suffix = "%Y-%m-%d"
    if os.getenv("DEBUG", "False").lower() == "true":
        handlers.append(logging.StreamHandler())

    root = logging.getLogger()
    for old in list(root.handlers):
        old.close()
        root.removeHandler(old)
    root.setLevel(level)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    _configured = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    logger = get_logger(__name__)
    logger.info("Flag 提交完成", extra=logger_extra({"challenge_id": 7}))
    """
    if not _configured:
        configure_logging()
    return logging.getLogger(name)


def logger_extra(extra: Optional[dict] = None) -> dict:
    """返回可安全写入日志的 extra：敏感键的值替换为 ***"""
    return {key: MASK if key.lower() in SENSITIVE_KEYS else value for key, value in (extra or {}).items()}
