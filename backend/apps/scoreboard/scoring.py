"""
计分引擎：

- 积分唯一写入口，所有加减分都走 award
- 只做数据库侧相对更新 score = score + delta，不做“读-算-写”，并发下不丢更新
- 不设下限，积分允许为负
- 调用方负责事务边界：与解题 / 提示使用记录在同一个 transaction.atomic 中调用
"""

from __future__ import annotations

from typing import Any

from django.contrib.auth import get_user_model
from django.db.models import F

from apps.common.exceptions import NotFoundError, ValidationError
from apps.common.infra.logger import get_logger, logger_extra

logger = get_logger(__name__)

User = get_user_model()


class ScoringEngine:
    """积分增减，delta 为正表示解题得分，为负表示提示扣分"""

    not_found_message = "用户不存在"

    def award(self, user_or_id: Any, delta: int) -> int:
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise ValidationError(message="积分变化量必须为整数")

        user_id = getattr(user_or_id, "pk", user_or_id)
        queryset = User.objects.filter(pk=user_id)

        if delta != 0:
            updated = queryset.update(score=F("score") + delta)
            if updated == 0:
                raise NotFoundError(message=self.not_found_message)

        score = queryset.values_list("score", flat=True).first()
        if score is None:
            raise NotFoundError(message=self.not_found_message)

        # 同步调用方持有的实例，避免继续使用过期积分
        if hasattr(user_or_id, "score"):
            user_or_id.score = score

        if delta != 0:
            logger.info(
                "积分变更",
                extra=logger_extra({"target_user_id": user_id, "delta": delta, "score": score}),
            )
        return score


default_engine = ScoringEngine()
