"""
账户接口按 IP 限速（登录防爆破、注册防批量）

速率取自 REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] 的 login / register；
超限时直接抛 RateLimitError，响应带 retry_after。
Flag 提交的频率窗口不走这里，见 apps.submissions.throttle。
"""

from __future__ import annotations

import math

from rest_framework.throttling import SimpleRateThrottle

from apps.common.exceptions import RateLimitError
from apps.common.infra.logger import get_logger, logger_extra

logger = get_logger(__name__)


class ClientIPThrottle(SimpleRateThrottle):
    message = "请求过于频繁，请稍后再试"

    def get_cache_key(self, request, view):
        return self.cache_format % {"scope": self.scope, "ident": self.get_ident(request)}

    def throttle_failure(self):
        wait = self.wait()
        retry_after = max(1, math.ceil(wait)) if wait is not None else None
        logger.warning("账户接口限速触发", extra=logger_extra({"scope": self.scope, "retry_after": retry_after}))
        raise RateLimitError(message=self.message, extra={"retry_after": retry_after})


class LoginRateThrottle(ClientIPThrottle):
    scope = "login"
    message = "登录请求过于频繁，请稍后再试"


class RegisterRateThrottle(ClientIPThrottle):
    scope = "register"
    message = "注册请求过于频繁，请稍后再试"
