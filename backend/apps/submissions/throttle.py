"""
Flag 提交频率限制

- 以 (用户, 题目) 为键（SCOPE=challenge），或仅以用户为键（SCOPE=user），
  在窗口内最多放行 RATE 次提交
- acquire 是原子的“判断 + 占用名额”：并发请求各自拿到确定的结果，突发并发也不会超过 RATE
- 被拒绝的提交不占名额、不进入判题、不落提交记录
- 判题流程发生存储错误时调用 release 退还名额，存储失败不计入窗口
- 后端通过 settings.FLAG_SUBMIT_THROTTLE["BACKEND"] 配置，也可直接注入到 SubmissionService
"""

from __future__ import annotations

import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta

from django.conf import settings
from django.core.cache import cache
from django.utils.module_loading import import_string

from apps.common.exceptions import CacheUnavailableError, ValidationError
from apps.common.infra import redis_client
from apps.common.infra.logger import get_logger, logger_extra
from apps.common.utils.redis_keys import (
    submission_counter_key,
    submission_lock_key,
    submission_window_key,
)
from apps.common.utils.time import ceil_seconds, from_timestamp

from .models import Submission

logger = get_logger(__name__)

SCOPE_CHALLENGE = "challenge"
SCOPE_USER = "user"

# 窗口互斥锁：持有上限（秒）、抢锁次数与间隔
LOCK_TIMEOUT = 5
LOCK_RETRIES = 200
LOCK_RETRY_INTERVAL = 0.005


@dataclass(frozen=True)
class ThrottleDecision:
    allowed: bool
    retry_after: int = 0


class SubmissionThrottle:
    """
    频率限制基类：
    - acquire(user_id, challenge_id, now) 判断并占用一个名额，now 为秒级时间戳
    - release(user_id, challenge_id, now) 退还 acquire 占用的名额
    """

    def __init__(self, rate: int = 10, window_seconds: int = 60, scope: str = SCOPE_CHALLENGE):
        if rate <= 0 or window_seconds <= 0:
            raise ValidationError(message="提交频率配置必须为正整数")
        if scope not in (SCOPE_CHALLENGE, SCOPE_USER):
            raise ValidationError(message="提交频率作用域只能是 challenge 或 user")
        self.rate = rate
        self.window_seconds = window_seconds
        self.scope = scope

    def scoped_challenge(self, challenge_id: int) -> int | None:
        return challenge_id if self.scope == SCOPE_CHALLENGE else None

    def retry_after(self, oldest: float, now: float) -> int:
        """最早一次窗口内提交过期所需秒数，向上取整并限制在 [1, window]"""
        wait = ceil_seconds(oldest + self.window_seconds - now)
        return max(1, min(self.window_seconds, wait))

    def acquire(self, user_id: int, challenge_id: int, now: float) -> ThrottleDecision:
        raise NotImplementedError

    def release(self, user_id: int, challenge_id: int, now: float) -> None:
        raise NotImplementedError


@contextmanager
def _window_lock(lock_key: str):
    """
    基于 cache.add 的互斥锁（LocMem 进程内加锁，Redis 缓存下为 SET NX）
    抢锁失败抛 CacheUnavailableError，宁可拒绝也不放过未计数的提交
    """
    token = uuid.uuid4().hex
    for _ in range(LOCK_RETRIES):
        if cache.add(lock_key, token, timeout=LOCK_TIMEOUT):
            break
        time.sleep(LOCK_RETRY_INTERVAL)
    else:
        logger.warning("提交频率窗口加锁超时", extra=logger_extra({"lock_key": lock_key}))
        raise CacheUnavailableError(message="提交频率窗口繁忙，请稍后重试")
    try:
        yield
    finally:
        if cache.get(lock_key) == token:
            cache.delete(lock_key)


class CacheSubmissionThrottle(SubmissionThrottle):
    """
    基于 Django 缓存的滑动窗口：缓存中保存窗口内已放行提交的时间戳
    - 同一窗口的读写在 _window_lock 下串行，名额在判题之前就已占用
    - LocMem 适用于单实例；多实例部署需配置共享缓存（CACHE_BACKEND=redis）
    """

    def _keys(self, user_id: int, challenge_id: int) -> tuple[str, str]:
        scoped = self.scoped_challenge(challenge_id)
        return submission_window_key(user_id, scoped), submission_lock_key(user_id, scoped)

    def _live_stamps(self, key: str, now: float) -> list[float]:
        stamps = cache.get(key) or []
        return sorted(ts for ts in stamps if now - ts < self.window_seconds)

    def acquire(self, user_id: int, challenge_id: int, now: float) -> ThrottleDecision:
        key, lock_key = self._keys(user_id, challenge_id)
        with _window_lock(lock_key):
            stamps = self._live_stamps(key, now)
            if len(stamps) >= self.rate:
                return ThrottleDecision(allowed=False, retry_after=self.retry_after(stamps[0], now))
            stamps.append(now)
            cache.set(key, stamps, timeout=self.window_seconds + 1)
        return ThrottleDecision(allowed=True)

    def release(self, user_id: int, challenge_id: int, now: float) -> None:
        key, lock_key = self._keys(user_id, challenge_id)
        with _window_lock(lock_key):
            stamps = cache.get(key) or []
            if now in stamps:
                stamps.remove(now)
                cache.set(key, stamps, timeout=self.window_seconds + 1)


class SubmissionLogThrottle(SubmissionThrottle):
    """
    基于提交记录表计数：提交审计日志本身就是计数来源

    - 只计入写了提交记录的结果（错误 / 正确 / 重复 / 校验器异常），
      题目不存在与未发布不落提交记录，因此不计入窗口
    - 提交记录在判题之后才写入，计数与写入不是同一个原子操作：
      突发并发时放行数可能超过 RATE，需要硬上限时使用缓存或 Redis 后端
    - release 为空操作，存储失败时提交记录本身就不会写入
    """

    def _queryset(self, user_id: int, challenge_id: int, now: float):
        since = from_timestamp(now) - timedelta(seconds=self.window_seconds)
        qs = Submission.objects.filter(user_id=user_id, created_at__gt=since)
        scoped = self.scoped_challenge(challenge_id)
        if scoped is not None:
            qs = qs.filter(challenge_id=scoped)
        return qs

    def acquire(self, user_id: int, challenge_id: int, now: float) -> ThrottleDecision:
        stamps = list(
            self._queryset(user_id, challenge_id, now)
            .order_by("-created_at")
            .values_list("created_at", flat=True)[: self.rate]
        )
        if len(stamps) >= self.rate:
            oldest = stamps[-1].timestamp()
            return ThrottleDecision(allowed=False, retry_after=self.retry_after(oldest, now))
        return ThrottleDecision(allowed=True)

    def release(self, user_id: int, challenge_id: int, now: float) -> None:
        return None


class RedisSubmissionThrottle(SubmissionThrottle):
    """
    基于 Redis 的固定窗口计数：先 INCR 再比较，超限立即 DECR 退回
    - INCR 原子返回本次请求的序号，并发请求不会拿到相同的名额
    - Redis 不可用时放行并记录警告
    """

    def _window_start(self, now: float) -> int:
        return int(now // self.window_seconds) * self.window_seconds

    def _key(self, user_id: int, challenge_id: int, now: float) -> str:
        return submission_counter_key(user_id, self.scoped_challenge(challenge_id), self._window_start(now))

    def _refund(self, key: str) -> None:
        try:
            redis_client.decr(key)
        except CacheUnavailableError:
            logger.warning("提交频率计数退还失败", extra=logger_extra({"counter_key": key}))

    def acquire(self, user_id: int, challenge_id: int, now: float) -> ThrottleDecision:
        key = self._key(user_id, challenge_id, now)
        try:
            count = redis_client.incr(key, ex=self.window_seconds)
        except CacheUnavailableError:
            logger.warning(
                "提交频率计数不可用，已放行",
                extra=logger_extra({"target_user_id": user_id, "challenge_id": challenge_id}),
            )
            return ThrottleDecision(allowed=True)
        if count > self.rate:
            self._refund(key)
            return ThrottleDecision(allowed=False, retry_after=self.retry_after(self._window_start(now), now))
        return ThrottleDecision(allowed=True)

    def release(self, user_id: int, challenge_id: int, now: float) -> None:
        self._refund(self._key(user_id, challenge_id, now))


def get_submission_throttle() -> SubmissionThrottle:
    """按 settings.FLAG_SUBMIT_THROTTLE 构造频率限制后端"""
    conf = getattr(settings, "FLAG_SUBMIT_THROTTLE", {}) or {}
    backend_cls = import_string(conf.get("BACKEND", "apps.submissions.throttle.CacheSubmissionThrottle"))
    return backend_cls(
        rate=int(conf.get("RATE", 10)),
        window_seconds=int(conf.get("WINDOW_SECONDS", 60)),
        scope=conf.get("SCOPE", SCOPE_CHALLENGE),
    )
