from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

# 模型定义：Flag 提交审计日志，只追加不修改

User = settings.AUTH_USER_MODEL


class Submission(models.Model):
    """
    Flag 提交记录：
    - 每次通过频率限制并到达判题环节的提交都会落一条（正确/错误/重复）
    - 记录提交来源（IP、UA），便于审计
    - 后台只读，服务层不更新也不删除
    """

    class Status(models.TextChoices):
        """提交判题状态枚举：区分正确/错误/重复提交"""
        ACCEPTED = "accepted", "正确"
        REJECTED = "rejected", "错误"
        DUPLICATE = "duplicate", "重复提交"

    # 提交关联的题目
    challenge = models.ForeignKey("challenges.Challenge", verbose_name="题目", related_name="submissions",
                                  on_delete=models.CASCADE)
    # 提交人
    user = models.ForeignKey(User, verbose_name="用户", related_name="submissions", on_delete=models.CASCADE)
    # 提交的原始 Flag
    flag_submitted = models.TextField("提交 Flag")
    # 判题状态
    status = models.CharField("状态", max_length=20, choices=Status.choices)
    # 是否正确
    is_correct = models.BooleanField("是否正确", default=False)
    # 判题消息（业务提示）
    message = models.CharField("提示", max_length=255, blank=True, default="")
    # 判定得分（正确时记录）
    awarded_points = models.PositiveIntegerField("得分", default=0)
    # 对应的解题记录（仅正确时关联）
    solve = models.ForeignKey("challenges.ChallengeSolve", verbose_name="解题记录", related_name="submissions",
                              on_delete=models.SET_NULL, null=True, blank=True)
    # 提交来源
    ip_address = models.GenericIPAddressField("来源 IP", null=True, blank=True)
    user_agent = models.CharField("User-Agent", max_length=255, blank=True, default="")
    # 提交时间：由服务层传入判题时刻，频率统计与审计共用
    created_at = models.DateTimeField("提交时间", default=timezone.now, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["user", "challenge", "created_at"], name="sub_user_chal_time_idx"),
            models.Index(fields=["challenge", "status"], name="sub_chal_status_idx"),
        ]
        verbose_name = "提交记录"
        verbose_name_plural = "提交记录"

    def __str__(self) -> str:
        return f"{self.user_id} -> {self.challenge_id} [{self.status}]"
