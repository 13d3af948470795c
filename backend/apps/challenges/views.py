from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view, inline_serializer
from rest_framework import serializers, status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.common import response
from apps.common.exceptions import HintAlreadyUsedError, HintNotFoundError, NotFoundError
from apps.common.infra.logger import get_logger
from apps.common.permissions import IsAuthenticated, IsAuthenticatedOrReadOnly
from apps.common.schema_utils import api_response_schema, error_response_schema

from .repo import ChallengeRepo
from .schemas import ChallengeCreateSchema, ChallengePublishSchema, ChallengeUpdateSchema
from .serializers import serialize_challenge
from .services import (
    ChallengeCreateService,
    ChallengeDeleteService,
    ChallengePublishService,
    ChallengeUpdateService,
    HintAlreadyUsed,
    HintEconomyService,
    HintNotFound,
    HintUnlocked,
)

# 模块级日志
logger = get_logger(__name__)


# 视图层：题目列表/创建、详情/更新/删除、发布、提示；仅做参数转换与服务调用


def challenge_schema_fields() -> dict:
    return {
        "id": serializers.IntegerField(),
        "title": serializers.CharField(),
        "slug": serializers.CharField(),
        "category": serializers.CharField(),
        "difficulty": serializers.CharField(),
        "points": serializers.IntegerField(),
        "is_published": serializers.BooleanField(),
        "solve_count": serializers.IntegerField(required=False),
        "has_solved": serializers.BooleanField(required=False),
    }


@extend_schema_view(
    get=extend_schema(tags=["challenges"]),
    post=extend_schema(tags=["challenges"]),
)
class ChallengeListView(APIView):
    """题目列表/创建接口：GET 公开（匿名只看已发布），POST 需登录"""

    permission_classes = [IsAuthenticatedOrReadOnly]
    challenge_repo = ChallengeRepo()

    @extend_schema(
        summary="题目列表",
        operation_id="challenge_list",
        parameters=[
            OpenApiParameter(name="category", location=OpenApiParameter.QUERY, required=False, type=str),
            OpenApiParameter(name="difficulty", location=OpenApiParameter.QUERY, required=False, type=str),
            OpenApiParameter(name="search", location=OpenApiParameter.QUERY, required=False, type=str),
        ],
        responses=api_response_schema(
            "ChallengeList",
            {"items": serializers.ListField(child=inline_serializer("ChallengeItem", challenge_schema_fields()))},
        ),
    )
    def get(self, request: Request) -> Response:
        params = request.query_params
        challenges = self.challenge_repo.list_for_user(
            request.user,
            category=params.get("category"),
            difficulty=params.get("difficulty"),
            search=params.get("search"),
        )
        data = [serialize_challenge(ch, user=request.user) for ch in challenges]
        return response.success({"items": data})

    @extend_schema(
        summary="创建题目",
        operation_id="challenge_create",
        request=OpenApiTypes.OBJECT,
        responses={
            status.HTTP_201_CREATED: api_response_schema(
                "ChallengeCreate",
                {"challenge": inline_serializer("ChallengeCreated", challenge_schema_fields())},
            ),
            status.HTTP_400_BAD_REQUEST: error_response_schema(),
        },
    )
    def post(self, request: Request) -> Response:
        schema = ChallengeCreateSchema.from_dict(request.data, auto_validate=True)
        challenge = ChallengeCreateService().execute(request.user, schema)
        return response.created({"challenge": serialize_challenge(challenge, user=request.user)}, message="题目已创建")


@extend_schema_view(
    get=extend_schema(tags=["challenges"]),
    patch=extend_schema(tags=["challenges"]),
    delete=extend_schema(tags=["challenges"]),
)
class ChallengeDetailView(APIView):
    """题目详情/更新/删除：未发布题目仅作者与管理员可见"""

    permission_classes = [IsAuthenticatedOrReadOnly]
    challenge_repo = ChallengeRepo()

    @extend_schema(
        summary="题目详情",
        operation_id="challenge_detail",
        responses={
            status.HTTP_200_OK: api_response_schema(
                "ChallengeDetail",
                {"challenge": inline_serializer("ChallengeDetailItem", challenge_schema_fields())},
            ),
            status.HTTP_404_NOT_FOUND: error_response_schema(),
        },
    )
    def get(self, request: Request, challenge_id: int) -> Response:
        challenge = self.challenge_repo.list_for_user(request.user).filter(pk=challenge_id).first()
        if challenge is None:
            raise NotFoundError(message=self.challenge_repo.not_found_message)
        return response.success({"challenge": serialize_challenge(challenge, user=request.user)})

    @extend_schema(
        summary="更新题目",
        operation_id="challenge_update",
        request=OpenApiTypes.OBJECT,
        responses={status.HTTP_200_OK: OpenApiTypes.OBJECT, status.HTTP_403_FORBIDDEN: error_response_schema()},
    )
    def patch(self, request: Request, challenge_id: int) -> Response:
        schema = ChallengeUpdateSchema.from_dict(request.data, auto_validate=True)
        challenge = ChallengeUpdateService().execute(request.user, challenge_id, schema)
        return response.success({"challenge": serialize_challenge(challenge, user=request.user)}, message="题目已更新")

    @extend_schema(
        summary="删除题目",
        operation_id="challenge_delete",
        responses={status.HTTP_204_NO_CONTENT: None, status.HTTP_403_FORBIDDEN: error_response_schema()},
    )
    def delete(self, request: Request, challenge_id: int) -> Response:
        ChallengeDeleteService().execute(request.user, challenge_id)
        return response.no_content(message="题目已删除")


@extend_schema_view(post=extend_schema(tags=["challenges"]))
class ChallengePublishView(APIView):
    """发布 / 下线题目：作者或管理员"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="发布或下线题目",
        operation_id="challenge_publish",
        request=inline_serializer("ChallengePublishRequest", {"is_published": serializers.BooleanField()}),
        responses=api_response_schema(
            "ChallengePublish",
            {"challenge": inline_serializer("ChallengePublished", challenge_schema_fields())},
        ),
    )
    def post(self, request: Request, challenge_id: int) -> Response:
        schema = ChallengePublishSchema.from_dict(request.data, auto_validate=True)
        challenge = ChallengePublishService().execute(request.user, challenge_id, schema)
        message = "题目已发布" if challenge.is_published else "题目已下线"
        return response.success({"challenge": serialize_challenge(challenge, user=request.user)}, message=message)


@extend_schema_view(get=extend_schema(tags=["challenges"]))
class ChallengeHintListView(APIView):
    """提示列表：序号、扣分与当前用户是否已使用"""

    permission_classes = [IsAuthenticated]
    hint_service = HintEconomyService()

    @extend_schema(
        summary="提示列表",
        operation_id="challenge_hint_list",
        responses=api_response_schema(
            "HintList",
            {
                "items": serializers.ListField(
                    child=inline_serializer(
                        "HintItem",
                        {
                            "index": serializers.IntegerField(),
                            "cost": serializers.IntegerField(),
                            "text": serializers.CharField(allow_null=True),
                            "used": serializers.BooleanField(),
                        },
                    )
                )
            },
        ),
    )
    def get(self, request: Request, challenge_id: int) -> Response:
        items = self.hint_service.list_hints(request.user, challenge_id)
        if items is None:
            raise NotFoundError(message=ChallengeRepo.not_found_message)
        return response.success({"items": items})


@extend_schema_view(post=extend_schema(tags=["challenges"]))
class ChallengeHintUseView(APIView):
    """
    使用提示：
    - 首次使用扣分并返回内容（201）
    - 已使用过返回 409，data 中仍带提示内容，不再扣分
    """

    permission_classes = [IsAuthenticated]
    hint_service = HintEconomyService()

    @extend_schema(
        summary="使用提示",
        operation_id="challenge_hint_use",
        request=None,
        responses={
            status.HTTP_201_CREATED: api_response_schema(
                "HintUse",
                {
                    "text": serializers.CharField(),
                    "cost": serializers.IntegerField(),
                    "score": serializers.IntegerField(),
                },
            ),
            status.HTTP_404_NOT_FOUND: error_response_schema(),
            status.HTTP_409_CONFLICT: error_response_schema(),
        },
    )
    def post(self, request: Request, challenge_id: int, hint_index: int) -> Response:
        outcome = self.hint_service.use_hint(request.user, challenge_id, hint_index)
        if isinstance(outcome, HintUnlocked):
            return response.created(
                {"text": outcome.text, "cost": outcome.cost, "score": outcome.score},
                message="提示已解锁",
            )
        if isinstance(outcome, HintAlreadyUsed):
            error = HintAlreadyUsedError()
            return response.fail(
                code=error.code,
                message=error.message,
                http_status=error.http_status,
                data={"text": outcome.text},
            )
        if isinstance(outcome, HintNotFound):
            raise HintNotFoundError(message=outcome.reason)
        raise TypeError(f"未知的提示结果类型：{type(outcome).__name__}")
