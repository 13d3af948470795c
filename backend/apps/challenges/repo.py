# apps/challenges/repo.py

from __future__ import annotations

import secrets
from typing import Any, Iterable, Optional

from django.db.models import Count, Exists, OuterRef, Q, QuerySet
from django.utils.text import slugify

from apps.common.base.base_repo import BaseRepo
from apps.common.permissions import is_admin

from .models import Challenge, ChallengeSolve, HintUsage


# 仓储层：封装题目、解题记录、提示使用记录的数据库访问，供服务层复用


class ChallengeRepo(BaseRepo[Challenge]):
    """
    题目仓储：
    - 按调用者可见性过滤（已发布 / 自己的草稿 / 管理员全部）
    - 列表附带解题人数与当前用户是否已解
    """

    model = Challenge
    not_found_message = "题目不存在"

    def get_queryset(self) -> QuerySet[Challenge]:
        return super().get_queryset().select_related("author")

    def visible_to(self, user: Any) -> QuerySet[Challenge]:
        """返回调用者可见的题目集合"""
        qs = self.get_queryset()
        if is_admin(user):
            return qs
        if user is not None and getattr(user, "is_authenticated", False):
            return qs.filter(Q(is_published=True) | Q(author_id=user.pk))
        return qs.filter(is_published=True)

    def list_for_user(
        self,
        user: Any,
        *,
        category: str | None = None,
        difficulty: str | None = None,
        search: str | None = None,
        author_id: int | None = None,
    ) -> QuerySet[Challenge]:
        """列表查询：可见性 + 分类/难度/关键字/作者过滤，附带 solve_count / has_solved"""
        qs = self.visible_to(user)
        if author_id is not None:
            qs = qs.filter(author_id=author_id)
        if category:
            qs = qs.filter(category__iexact=category)
        if difficulty:
            qs = qs.filter(difficulty=difficulty)
        if search:
            qs = qs.filter(Q(title__icontains=search) | Q(description__icontains=search))
        qs = qs.annotate(solve_count=Count("solves", distinct=True))
        if user is not None and getattr(user, "is_authenticated", False):
            qs = qs.annotate(
                has_solved=Exists(ChallengeSolve.objects.filter(challenge_id=OuterRef("pk"), user_id=user.pk))
            )
        return qs.order_by("-created_at", "-id")

    def get_visible_or_none(self, user: Any, challenge_id: Any) -> Optional[Challenge]:
        """获取可见题目，不可见与不存在一样返回 None"""
        try:
            return self.visible_to(user).filter(pk=challenge_id).first()
        except (ValueError, TypeError):
            return None

    def get_for_submit(self, challenge_id: Any) -> Optional[Challenge]:
        """提交判题时按主键取题目（不做可见性过滤，发布状态由服务层判断）"""
        try:
            return self.get_queryset().filter(pk=challenge_id).first()
        except (ValueError, TypeError):
            return None

    def generate_slug(self, title: str) -> str:
        """标题 slug + 6 位随机十六进制后缀，冲突时重新生成"""
        base = (slugify(title) or "challenge")[:200]
        while True:
            slug = f"{base}-{secrets.token_hex(3)}"
            if not self.model.objects.filter(slug=slug).exists():
                return slug

    def solve_count(self, challenge: Challenge) -> int:
        return ChallengeSolve.objects.filter(challenge=challenge).count()


class ChallengeSolveRepo(BaseRepo[ChallengeSolve]):
    """
    解题记录仓储：
    - has_solved 为提交流程的快速预检查，唯一约束才是最终仲裁
    """

    model = ChallengeSolve

    def has_solved(self, user_id: int, challenge_id: int) -> bool:
        return self.model.objects.filter(user_id=user_id, challenge_id=challenge_id).exists()

    def create_solve(self, *, user_id: int, challenge_id: int, awarded_points: int) -> ChallengeSolve:
        return self.model.objects.create(
            user_id=user_id,
            challenge_id=challenge_id,
            awarded_points=awarded_points,
        )

    def list_for_user(self, user_id: int) -> QuerySet[ChallengeSolve]:
        return (
            self.model.objects.filter(user_id=user_id)
            .select_related("challenge")
            .order_by("solved_at", "id")
        )

    def count_for_user(self, user_id: int) -> int:
        return self.model.objects.filter(user_id=user_id).count()


class HintUsageRepo(BaseRepo[HintUsage]):
    """提示使用记录仓储"""

    model = HintUsage

    def get_usage(self, user_id: int, challenge_id: int, hint_index: int) -> Optional[HintUsage]:
        return self.model.objects.filter(
            user_id=user_id,
            challenge_id=challenge_id,
            hint_index=hint_index,
        ).first()

    def create_usage(self, *, user_id: int, challenge_id: int, hint_index: int, cost: int) -> HintUsage:
        return self.model.objects.create(
            user_id=user_id,
            challenge_id=challenge_id,
            hint_index=hint_index,
            cost=cost,
        )

    def used_indexes(self, user_id: int, challenge_id: int) -> set[int]:
        rows: Iterable[int] = self.model.objects.filter(
            user_id=user_id,
            challenge_id=challenge_id,
        ).values_list("hint_index", flat=True)
        return set(rows)
