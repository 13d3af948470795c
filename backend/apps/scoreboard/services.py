"""
排行榜与排名：

- 仅统计非管理员的有效用户
- 排序：积分降序 → 解题数降序 → 注册时间升序 → 用户 ID 升序，保证全序
- 名次从 1 开始连续编号，同分也给出不同名次
- 每次读取实时计算，不做缓存
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db.models import Count, Q, QuerySet

from apps.common.base.base_service import BaseService
from apps.common.exceptions import NotFoundError, ValidationError

User = get_user_model()


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    user_id: int
    username: str
    nickname: str
    score: int
    solve_count: int

    def to_dict(self) -> dict:
        return {
            "rank": self.rank,
            "user_id": self.user_id,
            "username": self.username,
            "nickname": self.nickname,
            "score": self.score,
            "solve_count": self.solve_count,
        }


def ranked_users() -> QuerySet:
    """参与排名的用户集合：有效且非管理员"""
    return User.objects.filter(is_active=True, is_staff=False, is_superuser=False)


def parse_limit(value: Any) -> int:
    """
    解析排行榜条数：
    - 缺省取 LEADERBOARD_DEFAULT_LIMIT
    - 非整数或非正数抛 ValidationError，超过上限按上限截断
    """
    default = getattr(settings, "LEADERBOARD_DEFAULT_LIMIT", 50)
    maximum = getattr(settings, "LEADERBOARD_MAX_LIMIT", 500)
    if value is None or value == "":
        return min(default, maximum)
    if isinstance(value, bool):
        raise ValidationError(message="limit 必须为正整数")
    try:
        limit = int(value)
    except (TypeError, ValueError):
        raise ValidationError(message="limit 必须为正整数")
    if limit <= 0:
        raise ValidationError(message="limit 必须为正整数")
    return min(limit, maximum)


class LeaderboardService(BaseService[list]):
    """排行榜：返回前 limit 名的 LeaderboardEntry 列表"""

    atomic_enabled = False

    def perform(self, limit: Any = None) -> list[LeaderboardEntry]:
        limit = parse_limit(limit)
        rows = (
            ranked_users()
            .annotate(solve_count=Count("challenge_solves", distinct=True))
            .order_by("-score", "-solve_count", "date_joined", "id")
            .values("id", "username", "nickname", "score", "solve_count")[:limit]
        )
        return [
            LeaderboardEntry(
                rank=rank,
                user_id=row["id"],
                username=row["username"],
                nickname=row["nickname"] or row["username"],
                score=row["score"],
                solve_count=row["solve_count"],
            )
            for rank, row in enumerate(rows, start=1)
        ]


class UserRankService(BaseService[int]):
    """
    用户排名：1 + 积分严格高于该用户的参与者数量
    - 同分用户名次相同
    - 管理员与停用用户不参与排名，返回 0
    """

    atomic_enabled = False

    def perform(self, user_id: Any) -> int:
        user = User.objects.filter(pk=user_id).values("score", "is_staff", "is_superuser", "is_active").first()
        if user is None:
            raise NotFoundError(message="用户不存在")
        if user["is_staff"] or user["is_superuser"] or not user["is_active"]:
            return 0
        return 1 + ranked_users().filter(Q(score__gt=user["score"])).count()
