from __future__ import annotations

from django.db.models import QuerySet

from apps.common.base.base_repo import BaseRepo

from .models import Submission


# 仓储层：封装提交记录的查询与写入，只追加不修改


class SubmissionRepo(BaseRepo[Submission]):
    """提交仓储：写入审计记录与按用户/题目筛选"""

    model = Submission

    def filter_with_related(self, **kwargs) -> QuerySet[Submission]:
        """带常用外键的筛选，减少后续访问 N+1"""
        return (
            self.filter(**kwargs)
            .select_related("challenge", "user", "solve")
            .order_by("-created_at", "-id")
        )

    def record(self, **data) -> Submission:
        return self.create(data)
