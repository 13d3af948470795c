"""
题目模块模型：

- Challenge：题面、分值、Flag 哈希、发布状态与提示列表
- ChallengeSolve：解题事实，(user, challenge) 唯一，是“最多解一次”的最终仲裁
- HintUsage：提示使用事实，(user, challenge, hint_index) 唯一，是“每条提示最多扣一次分”的最终仲裁
"""

from __future__ import annotations

from django.conf import settings
from django.db import models


class Challenge(models.Model):
    """
    题目主体：
    - 由作者创建/编辑，发布状态由作者或管理员切换
    - flag_hash 为 Django 慢哈希编码串（算法$迭代次数$盐$摘要），盐内嵌其中，任何接口都不返回
    - 已有解题记录后仍允许修改 Flag，旧解题记录保持有效
    """

    class Difficulty(models.TextChoices):
        EASY = "easy", "Easy"
        MEDIUM = "medium", "Medium"
        HARD = "hard", "Hard"

    title = models.CharField("题目标题", max_length=200, help_text="展示给选手的题目名称")
    slug = models.SlugField("题目标识", max_length=220, unique=True, help_text="由标题生成并附加随机后缀")
    description = models.TextField("题目描述", blank=True, help_text="完整题面描述")
    category = models.CharField("分类", max_length=64, db_index=True, help_text="如 web / pwn / crypto / misc")
    difficulty = models.CharField(
        "难度",
        max_length=20,
        choices=Difficulty.choices,
        default=Difficulty.MEDIUM,
    )
    points = models.PositiveIntegerField("分值", default=100, help_text="解出后获得的分值")
    flag_hash = models.CharField("Flag 哈希", max_length=256, help_text="加盐慢哈希，不对外暴露")
    is_published = models.BooleanField("已发布", default=False, db_index=True)
    hints = models.JSONField("提示", default=list, blank=True, help_text='有序提示列表：[{"text": "...", "cost": 10}]')
    artifacts = models.JSONField("附件信息", default=list, blank=True, help_text='附件元信息：[{"name", "url", "size"}]')
    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        verbose_name="作者",
        related_name="authored_challenges",
        on_delete=models.CASCADE,
    )
    created_at = models.DateTimeField("创建时间", auto_now_add=True)
    updated_at = models.DateTimeField("更新时间", auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        verbose_name = "题目"
        verbose_name_plural = "题目"

    def __str__(self) -> str:
        return self.title

    def hint_at(self, index: int) -> dict | None:
        """按下标取提示，越界返回 None"""
        hints = self.hints or []
        if 0 <= index < len(hints):
            return hints[index]
        return None


class ChallengeSolve(models.Model):
    """
    解题记录：
    - 只由提交服务在正确提交的事务中创建，创建后不再修改
    - 删除题目时级联删除
    """

    challenge = models.ForeignKey(
        Challenge,
        verbose_name="题目",
        related_name="solves",
        on_delete=models.CASCADE,
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        verbose_name="选手",
        related_name="challenge_solves",
        on_delete=models.CASCADE,
    )
    awarded_points = models.PositiveIntegerField("得分", default=0, help_text="解题时题目的分值")
    solved_at = models.DateTimeField("解题时间", auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["solved_at", "id"]
        constraints = [
            models.UniqueConstraint(fields=["user", "challenge"], name="uniq_solve_user_challenge"),
        ]
        verbose_name = "解题记录"
        verbose_name_plural = "解题记录"

    def __str__(self) -> str:
        return f"{self.user_id} solved {self.challenge_id}"


class HintUsage(models.Model):
    """
    提示使用记录：
    - 只由提示服务在扣分事务中创建，cost 为使用时的提示价格
    """

    challenge = models.ForeignKey(
        Challenge,
        verbose_name="题目",
        related_name="hint_usages",
        on_delete=models.CASCADE,
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        verbose_name="选手",
        related_name="hint_usages",
        on_delete=models.CASCADE,
    )
    hint_index = models.PositiveIntegerField("提示序号", help_text="从 0 开始的提示下标")
    cost = models.IntegerField("扣分", default=0)
    used_at = models.DateTimeField("使用时间", auto_now_add=True)

    class Meta:
        ordering = ["used_at", "id"]
        constraints = [
            models.UniqueConstraint(fields=["user", "challenge", "hint_index"], name="uniq_hint_usage"),
        ]
        verbose_name = "提示使用记录"
        verbose_name_plural = "提示使用记录"

    def __str__(self) -> str:
        return f"{self.user_id} used hint {self.hint_index} of {self.challenge_id}"
