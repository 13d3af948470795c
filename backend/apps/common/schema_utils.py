"""OpenAPI 文档辅助：统一响应信封的 inline serializer"""

from __future__ import annotations

from functools import lru_cache

from drf_spectacular.utils import OpenApiParameter, inline_serializer
from rest_framework import serializers


def _envelope(name: str, data: serializers.Field, extra: serializers.Field | None = None) -> serializers.Serializer:
    return inline_serializer(
        name=name,
        fields={
            "code": serializers.IntegerField(help_text="业务码，0 表示成功"),
            "message": serializers.CharField(),
            "data": data,
            "extra": extra or serializers.DictField(required=False, allow_null=True),
        },
    )


def api_response_schema(name: str, data_fields: dict, *, paginated: bool = False) -> serializers.Serializer:
    """成功响应；paginated=True 时 data 为列表，extra 为分页信息"""
    data = inline_serializer(name=f"{name}Data", fields=data_fields, many=paginated)
    return _envelope(f"{name}Response", data, page_meta_serializer() if paginated else None)


@lru_cache(maxsize=None)
def page_meta_serializer() -> serializers.Serializer:
    return inline_serializer(
        name="PageMeta",
        fields={
            "page": serializers.IntegerField(),
            "page_size": serializers.IntegerField(),
            "total": serializers.IntegerField(),
            "total_pages": serializers.IntegerField(required=False),
            "has_next": serializers.BooleanField(),
            "has_previous": serializers.BooleanField(),
        },
    )


@lru_cache(maxsize=None)
def error_response_schema() -> serializers.Serializer:
    """错误响应：data 为 null 或结构化结果，extra 可带 retry_after"""
    return _envelope("ErrorResponse", serializers.JSONField(required=False, allow_null=True))


def page_parameters() -> list[OpenApiParameter]:
    return [
        OpenApiParameter(name=name, location=OpenApiParameter.QUERY, required=False, type=int)
        for name in ("page", "page_size")
    ]
