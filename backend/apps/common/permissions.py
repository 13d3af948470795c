"""
权限判定

权限类在未登录时直接抛 AuthError，响应格式与其它业务错误一致；
is_admin / is_owner_or_admin 供服务层复用。
"""

from __future__ import annotations

from typing import Any

from rest_framework.permissions import SAFE_METHODS, BasePermission

from .exceptions import AuthError


def _authenticated(user: Any) -> bool:
    return bool(user is not None and getattr(user, "is_authenticated", False))


def is_admin(user: Any) -> bool:
    return _authenticated(user) and bool(getattr(user, "is_staff", False) or getattr(user, "is_superuser", False))


def is_owner_or_admin(user: Any, owner_id: int | None) -> bool:
    if not _authenticated(user):
        return False
    return is_admin(user) or (owner_id is not None and user.pk == owner_id)


class AllowAny(BasePermission):
    def has_permission(self, request, view) -> bool:
        return True


class IsAuthenticated(BasePermission):
    """未登录时抛 AuthError（401）而不是返回 False"""

    def has_permission(self, request, view) -> bool:
        if not _authenticated(getattr(request, "user", None)):
            raise AuthError(message="请先登录后再执行此操作")
        return True


class IsAuthenticatedOrReadOnly(IsAuthenticated):
    def has_permission(self, request, view) -> bool:
        return request.method in SAFE_METHODS or super().has_permission(request, view)
