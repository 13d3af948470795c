"""
后台账户管理：
- 基于 Django 自带 UserAdmin，追加昵称与积分展示
- 积分只读，只能由解题 / 提示流程变更
"""

from __future__ import annotations

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin

from apps.common.infra.logger import get_logger, logger_extra

from .models import User

logger = get_logger(__name__)


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    list_display = ("id", "username", "nickname", "email", "score", "is_staff", "is_active", "date_joined")
    list_filter = ("is_staff", "is_superuser", "is_active")
    search_fields = ("username", "nickname", "email")
    ordering = ("-date_joined",)
    readonly_fields = ("score", "last_login", "date_joined", "updated_at")

    fieldsets = DjangoUserAdmin.fieldsets + (
        ("比赛信息", {"fields": ("nickname", "score", "updated_at")}),
    )
    add_fieldsets = (
        (
            None,
            {
                "classes": ("wide",),
                "fields": ("username", "email", "nickname", "password1", "password2"),
            },
        ),
    )

    def save_model(self, request, obj, form, change):
        super().save_model(request, obj, form, change)
        logger.info(
            "Admin修改用户" if change else "Admin新增用户",
            extra=logger_extra(
                {
                    "admin": getattr(request.user, "username", None),
                    "target_user_id": obj.pk,
                    "is_staff": obj.is_staff,
                    "is_active": obj.is_active,
                }
            ),
        )
