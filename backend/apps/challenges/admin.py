"""
挑战模块后台配置：
- 题目管理：通过明文 Flag 输入框重新设置 Flag，保存时哈希，哈希本身不展示
- 解题记录 / 提示使用记录只读，只能由业务流程写入
"""

from __future__ import annotations

from django import forms
from django.contrib import admin

from apps.common.infra.logger import get_logger, logger_extra

from .flags import default_verifier
from .models import Challenge, ChallengeSolve, HintUsage
from .repo import ChallengeRepo

logger = get_logger(__name__)


class AdminAuditMixin:
    """后台审计日志：记录增删改关键对象"""

    audit_model = ""

    def _audit(self, request, action: str, **extra) -> None:
        logger.info(
            f"Admin{action}",
            extra=logger_extra(
                {
                    "admin": getattr(request.user, "username", None),
                    "action": action,
                    **extra,
                }
            ),
        )

    def log_change(self, request, obj, message):
        super().log_change(request, obj, message)  # type: ignore[misc]
        self._audit(request, "change", model=self.audit_model or obj.__class__.__name__, object_id=obj.pk)

    def log_addition(self, request, obj, message):
        super().log_addition(request, obj, message)  # type: ignore[misc]
        self._audit(request, "add", model=self.audit_model or obj.__class__.__name__, object_id=obj.pk)

    def delete_model(self, request, obj):
        self._audit(request, "delete", model=self.audit_model or obj.__class__.__name__, object_id=obj.pk)
        super().delete_model(request, obj)  # type: ignore[misc]


class ChallengeAdminForm(forms.ModelForm):
    """题目后台表单：new_flag 留空表示不修改 Flag"""

    new_flag = forms.CharField(
        required=False,
        label="设置 Flag",
        max_length=1024,
        help_text="填写后保存时重新哈希；已有解题记录不受影响",
    )

    class Meta:
        model = Challenge
        exclude = ("flag_hash", "slug")

    def clean(self):
        cleaned = super().clean()
        if self.instance.pk is None and not (cleaned.get("new_flag") or "").strip():
            raise forms.ValidationError("新建题目必须设置 Flag")
        return cleaned


@admin.register(Challenge)
class ChallengeAdmin(AdminAuditMixin, admin.ModelAdmin):
    form = ChallengeAdminForm
    audit_model = "Challenge"
    list_display = ("id", "title", "category", "difficulty", "points", "is_published", "author", "created_at")
    list_filter = ("is_published", "difficulty", "category")
    search_fields = ("title", "slug", "category")
    readonly_fields = ("created_at", "updated_at")

    def save_model(self, request, obj, form, change):
        new_flag = form.cleaned_data.get("new_flag")
        if new_flag and new_flag.strip():
            obj.flag_hash = default_verifier.hash_flag(new_flag)
        if not obj.slug:
            obj.slug = ChallengeRepo().generate_slug(obj.title)
        super().save_model(request, obj, form, change)


class ReadOnlyAdmin(admin.ModelAdmin):
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(ChallengeSolve)
class ChallengeSolveAdmin(ReadOnlyAdmin):
    list_display = ("challenge", "user", "awarded_points", "solved_at")
    list_filter = ("challenge",)
    search_fields = ("user__username", "challenge__title")


@admin.register(HintUsage)
class HintUsageAdmin(ReadOnlyAdmin):
    list_display = ("challenge", "user", "hint_index", "cost", "used_at")
    list_filter = ("challenge",)
    search_fields = ("user__username", "challenge__title")
