# apps/challenges/crud_service.py

from __future__ import annotations

from typing import Any

from django.utils import timezone

from apps.accounts.models import User
from apps.common.base.base_service import BaseService
from apps.common.exceptions import NotFoundError, PermissionDeniedError
from apps.common.infra.logger import get_logger, logger_extra
from apps.common.permissions import is_admin, is_owner_or_admin

from .flags import FlagVerifier, default_verifier
from .models import Challenge
from .repo import ChallengeRepo
from .schemas import ChallengeCreateSchema, ChallengePublishSchema, ChallengeUpdateSchema

logger = get_logger(__name__)


def _load_for_manage(repo: ChallengeRepo, user: User, challenge_id: Any) -> Challenge:
    """
    取出可管理的题目：
    - 对调用者不可见的题目按不存在处理，避免泄露草稿
    """
    challenge = repo.get_visible_or_none(user, challenge_id)
    if challenge is None:
        raise NotFoundError(message=repo.not_found_message)
    return challenge


class ChallengeCreateService(BaseService[Challenge]):
    """
    创建题目服务：
    - 明文 Flag 在这里哈希，之后只保存哈希
    - 作者为当前登录用户
    """

    def __init__(self, challenge_repo: ChallengeRepo | None = None, verifier: FlagVerifier | None = None):
        self.challenge_repo = challenge_repo or ChallengeRepo()
        self.verifier = verifier or default_verifier

    def perform(self, user: User, schema: ChallengeCreateSchema) -> Challenge:
        payload = schema.to_dict(exclude={"flag"})
        payload.update(
            {
                "slug": self.challenge_repo.generate_slug(schema.title),
                "flag_hash": self.verifier.hash_flag(schema.flag),
                "author": user,
            }
        )
        challenge = self.challenge_repo.create(payload)
        logger.info(
            "创建题目",
            extra=logger_extra({"challenge_id": challenge.id, "slug": challenge.slug, "points": challenge.points}),
        )
        return challenge


class ChallengeUpdateService(BaseService[Challenge]):
    """
    更新题目服务：仅作者可修改
    - 修改 Flag 时重新哈希，已有解题记录不受影响
    """

    def __init__(self, challenge_repo: ChallengeRepo | None = None, verifier: FlagVerifier | None = None):
        self.challenge_repo = challenge_repo or ChallengeRepo()
        self.verifier = verifier or default_verifier

    def perform(self, user: User, challenge_id: Any, schema: ChallengeUpdateSchema) -> Challenge:
        challenge = _load_for_manage(self.challenge_repo, user, challenge_id)
        if challenge.author_id != user.pk:
            raise PermissionDeniedError(message="仅题目作者可以修改题目")

        payload = schema.to_dict(exclude_none=True, exclude={"flag"})
        if schema.flag is not None:
            payload["flag_hash"] = self.verifier.hash_flag(schema.flag)
        if not payload:
            return challenge

        payload["updated_at"] = timezone.now()
        challenge = self.challenge_repo.update(challenge, payload)
        logger.info(
            "更新题目",
            extra=logger_extra(
                {
                    "challenge_id": challenge.id,
                    "fields": sorted(k for k in payload if k != "updated_at"),
                    "flag_changed": schema.flag is not None,
                }
            ),
        )
        return challenge


class ChallengePublishService(BaseService[Challenge]):
    """发布 / 下线题目：作者或管理员"""

    def __init__(self, challenge_repo: ChallengeRepo | None = None):
        self.challenge_repo = challenge_repo or ChallengeRepo()

    def perform(self, user: User, challenge_id: Any, schema: ChallengePublishSchema) -> Challenge:
        challenge = _load_for_manage(self.challenge_repo, user, challenge_id)
        if not is_owner_or_admin(user, challenge.author_id):
            raise PermissionDeniedError(message="仅题目作者或管理员可以发布题目")
        if challenge.is_published != schema.is_published:
            challenge = self.challenge_repo.update(
                challenge,
                {"is_published": schema.is_published, "updated_at": timezone.now()},
            )
            logger.info(
                "题目发布状态变更",
                extra=logger_extra({"challenge_id": challenge.id, "is_published": challenge.is_published}),
            )
        return challenge


class ChallengeDeleteService(BaseService[None]):
    """删除题目：作者或管理员，解题与提示使用记录级联删除"""

    def __init__(self, challenge_repo: ChallengeRepo | None = None):
        self.challenge_repo = challenge_repo or ChallengeRepo()

    def perform(self, user: User, challenge_id: Any) -> None:
        challenge = _load_for_manage(self.challenge_repo, user, challenge_id)
        if not is_owner_or_admin(user, challenge.author_id):
            raise PermissionDeniedError(message="仅题目作者或管理员可以删除题目")
        logger.warning(
            "删除题目",
            extra=logger_extra(
                {"challenge_id": challenge.id, "slug": challenge.slug, "by_admin": is_admin(user)}
            ),
        )
        self.challenge_repo.delete(challenge)
