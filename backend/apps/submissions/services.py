from __future__ import annotations

from datetime import datetime
from typing import Any

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import QuerySet

from apps.accounts.models import User
from apps.challenges.flags import FlagVerifier, default_verifier
from apps.challenges.models import Challenge, ChallengeSolve
from apps.challenges.repo import ChallengeRepo, ChallengeSolveRepo
from apps.common.base.base_service import BaseService
from apps.common.exceptions import (
    FlagVerificationError,
    PermissionDeniedError,
    StoreError,
    SubmissionRateLimitError,
)
from apps.common.infra.logger import get_logger, logger_extra
from apps.common.permissions import is_admin
from apps.common.utils import time as time_utils
from apps.scoreboard.scoring import ScoringEngine, default_engine

from .models import Submission
from .repo import SubmissionRepo
from .results import AlreadySolved, Incorrect, NotFound, NotPublished, Solved, SubmissionOutcome
from .schemas import SubmissionCreateSchema, SubmissionQuerySchema
from .throttle import SubmissionThrottle, get_submission_throttle

# 服务层：频率限制、判题、解题记录与积分写入

logger = get_logger(__name__)


def serialize_submission(submission: Submission, *, include_flag: bool = False) -> dict:
    """提交记录序列化：原始 Flag 仅对管理员审计输出"""
    data = {
        "id": submission.id,
        "challenge": {
            "id": submission.challenge_id,
            "title": getattr(submission.challenge, "title", None),
        },
        "user": {
            "id": submission.user_id,
            "username": getattr(submission.user, "username", None),
        },
        "status": submission.status,
        "is_correct": submission.is_correct,
        "awarded_points": submission.awarded_points,
        "message": submission.message,
        "solve_id": submission.solve_id,
        "created_at": submission.created_at,
    }
    if include_flag:
        data.update(
            {
                "flag_submitted": submission.flag_submitted,
                "ip_address": submission.ip_address,
                "user_agent": submission.user_agent,
            }
        )
    return data


class SubmissionService(BaseService[SubmissionOutcome]):
    """
    Flag 提交服务：
    1. 频率限制：判题前原子占用名额，超限抛 SubmissionRateLimitError（extra.retry_after）
    2. 题目不存在 → NotFound；未发布 → NotPublished（不落提交记录、不判题）
    3. 已解出 → 记一条 duplicate 提交，返回 AlreadySolved，不判题
    4. 判题错误 → 记一条 rejected 提交，返回 Incorrect
    5. 判题正确 → 同一事务内写解题记录、加分、写 accepted 提交；
       唯一约束冲突且解题记录已存在时回滚本次写入，返回 AlreadySolved
    6. 发生存储错误时退还已占用的名额
    """

    atomic_enabled = False  # 自行控制事务，错误提交也要落库记录

    def __init__(
            self,
            challenge_repo: ChallengeRepo | None = None,
            solve_repo: ChallengeSolveRepo | None = None,
            submission_repo: SubmissionRepo | None = None,
            verifier: FlagVerifier | None = None,
            scoring: ScoringEngine | None = None,
            throttle: SubmissionThrottle | None = None,
    ):
        self.challenge_repo = challenge_repo or ChallengeRepo()
        self.solve_repo = solve_repo or ChallengeSolveRepo()
        self.submission_repo = submission_repo or SubmissionRepo()
        self.verifier = verifier or default_verifier
        self.scoring = scoring or default_engine
        self.throttle = throttle or get_submission_throttle()

    def perform(
            self,
            user: User,
            challenge_id: Any,
            schema: SubmissionCreateSchema,
            *,
            ip_address: str | None = None,
            user_agent: str = "",
            now: datetime | None = None,
    ) -> SubmissionOutcome:
        now = now or time_utils.now()
        ts = time_utils.to_timestamp(now)

        decision = self.throttle.acquire(user.pk, challenge_id, ts)
        if not decision.allowed:
            logger.info(
                "提交过于频繁，已拒绝",
                extra=logger_extra({"challenge_id": challenge_id, "retry_after": decision.retry_after}),
            )
            raise SubmissionRateLimitError(extra={"retry_after": decision.retry_after})

        provenance = {
            "ip_address": ip_address or None,
            "user_agent": (user_agent or "")[:255],
            "created_at": now,
        }
        try:
            outcome = self._judge(user, challenge_id, schema.flag, provenance)
        except (StoreError, DatabaseError):
            # 存储失败退还名额，调用方可直接重试
            self.throttle.release(user.pk, challenge_id, ts)
            raise

        logger.info(
            "Flag 提交完成",
            extra=logger_extra({"challenge_id": challenge_id, "result": outcome.status}),
        )
        return outcome

    def _judge(self, user: User, challenge_id: Any, flag: str, provenance: dict) -> SubmissionOutcome:
        challenge = self.challenge_repo.get_for_submit(challenge_id)
        if challenge is None:
            return NotFound()
        if not challenge.is_published:
            return NotPublished()

        if self.solve_repo.has_solved(user.pk, challenge.pk):
            self._record(user, challenge, flag, provenance, status=Submission.Status.DUPLICATE)
            return AlreadySolved()

        try:
            correct = self.verifier.verify(flag, challenge.flag_hash)
        except FlagVerificationError:
            self._record(
                user,
                challenge,
                flag,
                provenance,
                status=Submission.Status.REJECTED,
                message="Flag 校验失败",
            )
            raise

        if not correct:
            self._record(user, challenge, flag, provenance, status=Submission.Status.REJECTED)
            return Incorrect()

        try:
            with transaction.atomic():
                solve = self.solve_repo.create_solve(
                    user_id=user.pk,
                    challenge_id=challenge.pk,
                    awarded_points=challenge.points,
                )
                score = self.scoring.award(user, challenge.points)
                self._record(
                    user,
                    challenge,
                    flag,
                    provenance,
                    status=Submission.Status.ACCEPTED,
                    solve=solve,
                )
        except IntegrityError as exc:
            if self.solve_repo.has_solved(user.pk, challenge.pk):
                logger.info(
                    "并发重复解题，已按重复提交处理",
                    extra=logger_extra({"challenge_id": challenge.pk}),
                )
                self._record(user, challenge, flag, provenance, status=Submission.Status.DUPLICATE)
                return AlreadySolved()
            logger.exception("解题记录写入失败", exc_info=exc)
            raise StoreError() from exc

        return Solved(points_awarded=challenge.points, score=score)

    _MESSAGES = {
        Submission.Status.ACCEPTED: "Flag 正确",
        Submission.Status.REJECTED: "Flag 不正确",
        Submission.Status.DUPLICATE: "该题已解出",
    }

    def _record(
            self,
            user: User,
            challenge: Challenge,
            flag: str,
            provenance: dict,
            *,
            status: str,
            solve: ChallengeSolve | None = None,
            message: str | None = None,
    ) -> Submission:
        return self.submission_repo.record(
            user=user,
            challenge=challenge,
            flag_submitted=flag,
            status=status,
            is_correct=status == Submission.Status.ACCEPTED,
            message=message or self._MESSAGES[status],
            awarded_points=solve.awarded_points if solve is not None else 0,
            solve=solve,
            **provenance,
        )


class SubmissionListService(BaseService[QuerySet]):
    """
    提交记录查询：
    - 普通用户只能看自己的提交
    - 管理员可按 user_id / challenge_id 审计任意用户
    """

    atomic_enabled = False

    def __init__(self, submission_repo: SubmissionRepo | None = None):
        self.submission_repo = submission_repo or SubmissionRepo()

    def perform(self, user: User, schema: SubmissionQuerySchema) -> QuerySet[Submission]:
        filters: dict[str, Any] = {}
        if is_admin(user):
            if schema.user_id is not None:
                filters["user_id"] = schema.user_id
        else:
            if schema.user_id is not None and schema.user_id != user.pk:
                raise PermissionDeniedError(message="只能查看自己的提交记录")
            filters["user_id"] = user.pk
        if schema.challenge_id is not None:
            filters["challenge_id"] = schema.challenge_id
        return self.submission_repo.filter_with_related(**filters)
