"""账户模块业务服务

注册、登录（颁发 JWT）、用户资料（积分、排名、解题情况）与用户出题列表
"""

from __future__ import annotations

from typing import Any

from rest_framework_simplejwt.tokens import RefreshToken

from apps.challenges.repo import ChallengeRepo, ChallengeSolveRepo
from apps.challenges.serializers import serialize_challenge, serialize_solve
from apps.common.base.base_service import BaseService
from apps.common.exceptions import (
    AccountInactiveError,
    ConflictError,
    InvalidCredentialsError,
)
from apps.common.infra.logger import get_logger, logger_extra
from apps.scoreboard.services import UserRankService

from .models import User
from .repo import UserRepo
from .schemas import LoginSchema, RegisterSchema

logger = get_logger(__name__)


def serialize_user(user: User, *, private: bool = True) -> dict[str, object]:
    """
    用户序列化：
    - private=True 时包含邮箱与管理员标记（本人视角）
    - 公开资料只输出用户名、昵称、积分等
    """
    data: dict[str, object] = {
        "id": user.pk,
        "username": user.username,
        "nickname": user.display_name,
        "score": user.score,
        "date_joined": user.date_joined.isoformat() if user.date_joined else None,
    }
    if private:
        data.update(
            {
                "email": user.email,
                "is_staff": user.is_staff,
                "is_superuser": user.is_superuser,
                "updated_at": user.updated_at.isoformat() if user.updated_at else None,
            }
        )
    return data


class RegisterService(BaseService[User]):
    """
    选手注册服务：
    - 校验用户名/邮箱唯一性
    - 创建用户，初始积分为 0
    """

    def __init__(self, user_repo: UserRepo | None = None):
        self.user_repo = user_repo or UserRepo()

    def perform(self, schema: RegisterSchema) -> User:
        email = schema.email.lower()
        username = schema.username

        if self.user_repo.username_exists(username):
            raise ConflictError(message="用户名已被使用")
        if self.user_repo.email_exists(email):
            raise ConflictError(message="邮箱已注册账号")

        user = self.user_repo.create_user(
            username=username,
            email=email,
            password=schema.password,
            nickname=schema.nickname or username,
        )
        logger.info("注册成功", extra=logger_extra({"new_user_id": user.id, "email": email}))
        return user


class LoginService(BaseService[dict[str, object]]):
    """
    登录服务：
    - 支持用户名或邮箱登录
    - 校验账户状态与密码，返回 JWT 刷新/访问令牌及用户信息
    """

    atomic_enabled = False

    def __init__(self, user_repo: UserRepo | None = None):
        self.user_repo = user_repo or UserRepo()

    def perform(self, schema: LoginSchema) -> dict[str, object]:
        identifier = schema.identifier
        user = self.user_repo.get_by_identifier(identifier)
        if user is None:
            logger.warning("登录失败：账号不存在", extra=logger_extra({"identifier": identifier}))
            raise InvalidCredentialsError(message="账号或密码错误")

        if not user.check_password(schema.password):
            logger.warning(
                "登录失败：密码错误",
                extra=logger_extra({"target_user_id": user.id, "identifier": identifier}),
            )
            raise InvalidCredentialsError(message="账号或密码错误")

        if not user.is_active:
            logger.warning(
                "登录失败：账户失效",
                extra=logger_extra({"target_user_id": user.id, "identifier": identifier}),
            )
            raise AccountInactiveError(message="账户失效，请联系管理员")

        refresh = RefreshToken.for_user(user)
        logger.info("登录成功", extra=logger_extra({"target_user_id": user.id, "identifier": identifier}))
        return {
            "refresh": str(refresh),
            "access": str(refresh.access_token),
            "user": serialize_user(user),
        }


class UserProfileService(BaseService[dict[str, object]]):
    """
    用户资料：积分、排名、解题数与已解题目列表
    - 本人查看时包含私有字段
    """

    atomic_enabled = False

    def __init__(
            self,
            user_repo: UserRepo | None = None,
            solve_repo: ChallengeSolveRepo | None = None,
            rank_service: UserRankService | None = None,
    ):
        self.user_repo = user_repo or UserRepo()
        self.solve_repo = solve_repo or ChallengeSolveRepo()
        self.rank_service = rank_service or UserRankService()

    def perform(self, user_id: Any, *, viewer: Any = None) -> dict[str, object]:
        user = self.user_repo.get_or_raise(user_id)
        private = viewer is not None and getattr(viewer, "pk", None) == user.pk
        solves = list(self.solve_repo.list_for_user(user.pk))
        return {
            "user": serialize_user(user, private=private),
            "rank": self.rank_service.execute(user.pk),
            "solve_count": len(solves),
            "solves": [serialize_solve(solve) for solve in solves],
        }


class UserChallengesService(BaseService[list[dict]]):
    """
    用户出题列表：按查看者可见性过滤
    - 他人只看到已发布的题目，作者本人与管理员可看到草稿
    """

    atomic_enabled = False

    def __init__(self, user_repo: UserRepo | None = None, challenge_repo: ChallengeRepo | None = None):
        self.user_repo = user_repo or UserRepo()
        self.challenge_repo = challenge_repo or ChallengeRepo()

    def perform(self, user_id: Any, *, viewer: Any = None) -> list[dict]:
        user = self.user_repo.get_or_raise(user_id)
        challenges = self.challenge_repo.list_for_user(viewer, author_id=user.pk)
        return [serialize_challenge(ch, user=viewer) for ch in challenges]
