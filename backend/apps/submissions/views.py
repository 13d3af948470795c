from __future__ import annotations

from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view, inline_serializer
from rest_framework import serializers, status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.common import response
from apps.common.exceptions import ChallengeNotAvailableError, NotFoundError
from apps.common.middleware import get_client_ip
from apps.common.pagination import StandardPagination
from apps.common.permissions import IsAuthenticated, is_admin
from apps.common.schema_utils import (
    api_response_schema,
    error_response_schema,
    page_parameters,
)

from .results import AlreadySolved, Incorrect, NotFound, NotPublished, Solved, SubmissionOutcome
from .schemas import SubmissionCreateSchema, SubmissionQuerySchema
from .services import SubmissionListService, SubmissionService, serialize_submission


# 视图层：提交 Flag 与查询提交记录，仅做参数转换、服务调用与结果映射


def _solved(outcome: Solved) -> Response:
    return response.created(
        {
            "correct": True,
            "status": outcome.status,
            "points_awarded": outcome.points_awarded,
            "score": outcome.score,
        },
        message="Flag 正确",
    )


def _incorrect(outcome: Incorrect) -> Response:
    return response.success({"correct": False, "status": outcome.status}, message="Flag 不正确，请继续努力")


def _already_solved(outcome: AlreadySolved) -> Response:
    return response.success(
        {"correct": False, "status": outcome.status, "points_awarded": 0},
        message="该题已解出，无需重复提交",
    )


def _not_published(outcome: NotPublished) -> Response:
    error = ChallengeNotAvailableError()
    return response.fail(
        code=error.code,
        message=error.message,
        http_status=error.http_status,
        data={"correct": False, "status": outcome.status},
    )


def _not_found(outcome: NotFound) -> Response:
    error = NotFoundError(message="题目不存在")
    return response.fail(
        code=error.code,
        message=error.message,
        http_status=error.http_status,
        data={"correct": False, "status": outcome.status},
    )


OUTCOME_RESPONSES = {
    Solved: _solved,
    Incorrect: _incorrect,
    AlreadySolved: _already_solved,
    NotPublished: _not_published,
    NotFound: _not_found,
}


def outcome_response(outcome: SubmissionOutcome) -> Response:
    """按结果类型映射 HTTP 响应"""
    return OUTCOME_RESPONSES[type(outcome)](outcome)


@extend_schema_view(post=extend_schema(tags=["submissions"]))
class SubmitFlagView(APIView):
    """
    Flag 提交接口：
    - 需登录；超过频率限制返回 429 与 Retry-After
    - 首次解出返回 201，错误/重复返回 200，未发布返回 400，题目不存在返回 404
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="提交 Flag",
        operation_id="challenge_submit_flag",
        request=inline_serializer(name="SubmitFlagRequest", fields={"flag": serializers.CharField(max_length=1024)}),
        responses={
            status.HTTP_201_CREATED: api_response_schema(
                "SubmitSolved",
                {
                    "correct": serializers.BooleanField(),
                    "status": serializers.CharField(),
                    "points_awarded": serializers.IntegerField(),
                    "score": serializers.IntegerField(),
                },
            ),
            status.HTTP_200_OK: api_response_schema(
                "SubmitRejected",
                {
                    "correct": serializers.BooleanField(),
                    "status": serializers.CharField(),
                    "points_awarded": serializers.IntegerField(required=False),
                },
            ),
            status.HTTP_400_BAD_REQUEST: error_response_schema(),
            status.HTTP_404_NOT_FOUND: error_response_schema(),
            status.HTTP_429_TOO_MANY_REQUESTS: error_response_schema(),
        },
    )
    def post(self, request: Request, challenge_id: int) -> Response:
        schema = SubmissionCreateSchema.from_dict(request.data)
        outcome = SubmissionService().execute(
            request.user,
            challenge_id,
            schema,
            ip_address=get_client_ip(request),
            user_agent=request.META.get("HTTP_USER_AGENT", ""),
        )
        return outcome_response(outcome)


@extend_schema_view(get=extend_schema(tags=["submissions"]))
class SubmissionListView(APIView):
    """提交记录列表：本人提交；管理员可按 user_id / challenge_id 审计"""

    permission_classes = [IsAuthenticated]
    pagination_class = StandardPagination

    @extend_schema(
        summary="提交记录",
        operation_id="submission_list",
        parameters=page_parameters()
        + [
            OpenApiParameter(name="user_id", location=OpenApiParameter.QUERY, required=False, type=int),
            OpenApiParameter(name="challenge_id", location=OpenApiParameter.QUERY, required=False, type=int),
        ],
        responses=api_response_schema(
            "SubmissionList",
            {
                "id": serializers.IntegerField(),
                "status": serializers.CharField(),
                "is_correct": serializers.BooleanField(),
                "awarded_points": serializers.IntegerField(),
                "message": serializers.CharField(),
                "created_at": serializers.DateTimeField(),
            },
            paginated=True,
        ),
    )
    def get(self, request: Request) -> Response:
        schema = SubmissionQuerySchema.from_dict(
            {
                "user_id": request.query_params.get("user_id"),
                "challenge_id": request.query_params.get("challenge_id"),
            }
        )
        queryset = SubmissionListService().execute(request.user, schema)
        paginator = self.pagination_class()
        page = paginator.paginate_queryset(queryset, request, view=self)
        include_flag = is_admin(request.user)
        items = [serialize_submission(sub, include_flag=include_flag) for sub in page]
        return paginator.get_paginated_response(items)
