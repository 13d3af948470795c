# apps/common/utils/redis_keys.py

"""
缓存键名集中管理，避免各模块随意拼接带来不一致
业务场景：Flag 提交频率窗口（缓存 / Redis 两种实现共用）
"""

from __future__ import annotations


def submission_window_key(user_id: int, challenge_id: int | None = None) -> str:
    """
    Flag 提交频率窗口键
    - challenge_id 为 None 时表示按用户全局计数
    """
    if challenge_id is None:
        return f"flag_submit:user:{user_id}"
    return f"flag_submit:user:{user_id}:challenge:{challenge_id}"


def submission_counter_key(user_id: int, challenge_id: int | None, window_start: int) -> str:
    """固定窗口计数器键（Redis 实现），window_start 为窗口起点的秒级时间戳"""
    return f"{submission_window_key(user_id, challenge_id)}:{window_start}"


def submission_lock_key(user_id: int, challenge_id: int | None = None) -> str:
    """滑动窗口互斥键：同一窗口的“读取-判断-写入”在该键下串行"""
    return f"{submission_window_key(user_id, challenge_id)}:lock"
