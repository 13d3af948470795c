"""
账户相关模型定义

- 扩展 User 模型：昵称、积分（score）与更新时间
- score 只允许由计分引擎（apps.scoreboard.scoring.ScoringEngine）以原子增量方式写入，可为负数
- 管理员（is_staff / is_superuser）可正常提交与使用提示，但不进入排行榜
"""

from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """
    自定义用户模型：
    - 承载选手与管理员的认证主体
    - 被题目、提交、解题、提示使用记录广泛引用
    - 保存时自动填充昵称
    """

    email = models.EmailField("邮箱", unique=True)
    nickname = models.CharField(
        "昵称",
        max_length=40,
        blank=True,
        help_text="昵称，默认等于用户名",
    )
    score = models.IntegerField(
        "积分",
        default=0,
        db_index=True,
        help_text="当前积分：解题加分、使用提示扣分，允许为负",
    )
    updated_at = models.DateTimeField("更新时间", auto_now=True)

    EMAIL_FIELD = "email"
    REQUIRED_FIELDS = ["email"]

    class Meta(AbstractUser.Meta):  # type: ignore[misc]
        ordering = ["-date_joined"]
        verbose_name = "用户"
        verbose_name_plural = "用户"

    def save(self, *args, **kwargs):
        if not self.nickname:
            self.nickname = self.username
        super().save(*args, **kwargs)

    @property
    def is_admin(self) -> bool:
        """管理员标记：is_staff 或 is_superuser"""
        return bool(self.is_staff or self.is_superuser)

    @property
    def display_name(self) -> str:
        """展示名：优先昵称，否则回退用户名"""
        return self.nickname or self.username
