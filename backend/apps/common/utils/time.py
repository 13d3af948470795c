"""时间工具：业务时间统一为 UTC 感知时间，频率窗口使用秒级时间戳"""

from __future__ import annotations

import math
from datetime import datetime, timezone


def now() -> datetime:
    return datetime.now(timezone.utc)


def to_timestamp(moment: datetime) -> float:
    """naive 时间按 UTC 解释"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.timestamp()


def from_timestamp(seconds: float) -> datetime:
    return datetime.fromtimestamp(float(seconds), tz=timezone.utc)


def ceil_seconds(seconds: float) -> int:
    """对外展示的等待时间一律向上取整"""
    return math.ceil(seconds)
