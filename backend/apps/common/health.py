from __future__ import annotations

from django.db import DatabaseError, connection
from drf_spectacular.utils import extend_schema
from rest_framework import serializers
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.common import response
from apps.common.exceptions import StoreError
from apps.common.permissions import AllowAny
from apps.common.schema_utils import api_response_schema


class HealthCheckView(APIView):
    """探活：匿名可访问，执行一次 SELECT 1 确认数据库可用，失败返回 503"""

    authentication_classes: list = []
    permission_classes = [AllowAny]

    @extend_schema(
        summary="健康检查",
        request=None,
        responses=api_response_schema(
            "HealthCheck",
            {"status": serializers.CharField(), "database": serializers.CharField()},
        ),
    )
    def get(self, request: Request) -> Response:
        try:
            with connection.cursor() as cursor:
                cursor.execute("SELECT 1")
        except DatabaseError as exc:
            raise StoreError(message="数据库不可用") from exc
        return response.success({"status": "ok", "database": "ok"})
