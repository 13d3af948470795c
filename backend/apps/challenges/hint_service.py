# apps/challenges/hint_service.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from django.db import IntegrityError, transaction

from apps.accounts.models import User
from apps.common.base.base_service import BaseService
from apps.common.exceptions import StoreError
from apps.common.infra.logger import get_logger, logger_extra
from apps.common.permissions import is_owner_or_admin
from apps.scoreboard.scoring import ScoringEngine, default_engine

from .repo import ChallengeRepo, HintUsageRepo
from .serializers import serialize_hint

logger = get_logger(__name__)


@dataclass(frozen=True)
class HintUnlocked:
    """首次使用：已扣分，返回提示内容与扣分后的积分"""
    text: str
    cost: int
    score: int


@dataclass(frozen=True)
class HintAlreadyUsed:
    """已使用过：不再扣分，重新返回提示内容"""
    text: str


@dataclass(frozen=True)
class HintNotFound:
    """题目不存在 / 不可见，或提示序号越界"""
    reason: str


HintOutcome = Union[HintUnlocked, HintAlreadyUsed, HintNotFound]


class HintEconomyService(BaseService[HintOutcome]):
    """
    提示经济服务：
    - 每个用户每条提示最多扣一次分
    - 扣分无下限，积分可以为负
    - 使用记录插入与扣分在同一事务中完成，唯一约束兜底并发重复使用
    """

    atomic_enabled = False

    def __init__(
            self,
            challenge_repo: ChallengeRepo | None = None,
            usage_repo: HintUsageRepo | None = None,
            scoring: ScoringEngine | None = None,
    ):
        self.challenge_repo = challenge_repo or ChallengeRepo()
        self.usage_repo = usage_repo or HintUsageRepo()
        self.scoring = scoring or default_engine

    def perform(self, user: User, challenge_id: Any, hint_index: int) -> HintOutcome:
        challenge = self.challenge_repo.get_visible_or_none(user, challenge_id)
        if challenge is None:
            return HintNotFound(reason="题目不存在")
        hint = challenge.hint_at(hint_index)
        if hint is None:
            return HintNotFound(reason="提示不存在")

        text = hint.get("text", "")
        cost = int(hint.get("cost", 0))

        if self.usage_repo.get_usage(user.pk, challenge.pk, hint_index) is not None:
            return HintAlreadyUsed(text=text)

        try:
            with transaction.atomic():
                self.usage_repo.create_usage(
                    user_id=user.pk,
                    challenge_id=challenge.pk,
                    hint_index=hint_index,
                    cost=cost,
                )
                score = self.scoring.award(user, -cost)
        except IntegrityError as exc:
            if self.usage_repo.get_usage(user.pk, challenge.pk, hint_index) is not None:
                logger.info(
                    "并发重复使用提示，未重复扣分",
                    extra=logger_extra({"challenge_id": challenge.pk, "hint_index": hint_index}),
                )
                return HintAlreadyUsed(text=text)
            logger.exception("提示使用记录写入失败", exc_info=exc)
            raise StoreError() from exc

        logger.info(
            "使用提示",
            extra=logger_extra(
                {"challenge_id": challenge.pk, "hint_index": hint_index, "cost": cost, "score": score}
            ),
        )
        return HintUnlocked(text=text, cost=cost, score=score)

    use_hint = BaseService.execute

    def list_hints(self, user: User, challenge_id: Any) -> list[dict] | None:
        """
        提示列表：序号、扣分、是否已使用
        - 已使用的提示返回内容；作者与管理员始终可见
        - 题目不可见时返回 None
        """
        challenge = self.challenge_repo.get_visible_or_none(user, challenge_id)
        if challenge is None:
            return None
        used = self.usage_repo.used_indexes(user.pk, challenge.pk) if user.is_authenticated else set()
        can_manage = is_owner_or_admin(user, challenge.author_id)
        return [
            serialize_hint(idx, hint, reveal=can_manage or idx in used, used=idx in used)
            for idx, hint in enumerate(challenge.hints or [])
        ]
