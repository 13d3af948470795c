"""
JWT 认证（基于 djangorestframework-simplejwt）

- 令牌来自 Authorization: Bearer <token>；JWT_USE_COOKIE 开启时也读取 JWT_ACCESS_COOKIE_NAME 指定的 cookie
- 没带令牌返回 None，是否放行交给权限类
- 令牌无效或过期抛 TokenError(40102)，用户不存在或已停用抛 AuthError(40100)
- 认证成功后把用户写入请求上下文，供日志使用
"""

from __future__ import annotations

from django.conf import settings
from rest_framework_simplejwt.authentication import JWTAuthentication as SimpleJWTAuthentication
from rest_framework_simplejwt.exceptions import AuthenticationFailed, InvalidToken

from .exceptions import AuthError, TokenError
from .infra.logger import get_logger, logger_extra
from .utils.request_context import bind_user

logger = get_logger(__name__)


class JWTAuthentication(SimpleJWTAuthentication):
    def raw_token(self, request):
        header = self.get_header(request)
        token = self.get_raw_token(header) if header is not None else None
        if token is None and getattr(settings, "JWT_USE_COOKIE", False):
            token = request.COOKIES.get(getattr(settings, "JWT_ACCESS_COOKIE_NAME", "ctf_access_token")) or None
        return token

    def authenticate(self, request):
        token = self.raw_token(request)
        if token is None:
            return None
        try:
            validated = self.get_validated_token(token)
            user = self.get_user(validated)
        except InvalidToken as exc:
            logger.warning("JWT 无效或已过期", extra=logger_extra({"reason": "invalid_token"}))
            raise TokenError(message="令牌无效或已过期，请重新登录") from exc
        except AuthenticationFailed as exc:
            reason = str(exc.detail) if getattr(exc, "detail", None) else "认证失败，请重新登录"
            logger.warning("JWT 用户校验失败", extra=logger_extra({"reason": reason}))
            raise AuthError(message=reason) from exc
        bind_user(user)
        return user, validated
