from __future__ import annotations

from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view
from rest_framework import serializers
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.common import response
from apps.common.permissions import AllowAny
from apps.common.schema_utils import api_response_schema

from .services import LeaderboardService, UserRankService


@extend_schema_view(get=extend_schema(tags=["scoreboard"]))
class LeaderboardView(APIView):
    """排行榜：公开访问，?limit=N 控制返回条数"""

    permission_classes = [AllowAny]
    service = LeaderboardService()

    @extend_schema(
        summary="排行榜",
        operation_id="scoreboard_leaderboard",
        parameters=[
            OpenApiParameter(name="limit", location=OpenApiParameter.QUERY, required=False, type=int),
        ],
        responses=api_response_schema(
            "Leaderboard",
            {
                "items": serializers.ListField(child=serializers.DictField()),
            },
        ),
    )
    def get(self, request: Request) -> Response:
        entries = self.service.execute(request.query_params.get("limit"))
        return response.success({"items": [entry.to_dict() for entry in entries]})


@extend_schema_view(get=extend_schema(tags=["scoreboard"]))
class UserRankView(APIView):
    """单个用户的当前名次：管理员返回 0"""

    permission_classes = [AllowAny]
    service = UserRankService()

    @extend_schema(
        summary="用户排名",
        operation_id="scoreboard_user_rank",
        responses=api_response_schema(
            "UserRank",
            {"user_id": serializers.IntegerField(), "rank": serializers.IntegerField()},
        ),
    )
    def get(self, request: Request, user_id: int) -> Response:
        rank = self.service.execute(user_id)
        return response.success({"user_id": user_id, "rank": rank})
