from __future__ import annotations

from django.contrib import admin

from .models import Submission


# Admin 配置：提交记录只读审计


@admin.register(Submission)
class SubmissionAdmin(admin.ModelAdmin):
    """提交记录后台：便于运营查看判题结果与提交来源"""

    list_display = ("challenge", "user", "status", "is_correct", "awarded_points", "ip_address", "created_at")
    list_filter = ("status", "is_correct", "challenge")
    search_fields = ("user__username", "challenge__slug", "ip_address")

    # 只读，禁止新增/修改/删除
    readonly_fields = (
        "challenge",
        "user",
        "flag_submitted",
        "status",
        "is_correct",
        "message",
        "awarded_points",
        "solve",
        "ip_address",
        "user_agent",
        "created_at",
    )

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
