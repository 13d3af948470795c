"""
统一响应结构：{code, message, data, extra}

- code 为 0 表示成功，非 0 为业务错误码（见 apps.common.exceptions）
- extra 可选，放分页信息、retry_after 等元数据；为空时不输出
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from rest_framework import status
from rest_framework.response import Response

from .exceptions import BizError

SUCCESS_CODE = 0


def envelope(code: int, message: str, data: Any = None, extra: Optional[Mapping[str, Any]] = None) -> dict:
    body: dict[str, Any] = {"code": code, "message": message, "data": data}
    if extra:
        body["extra"] = dict(extra)
    return body


def payload_from_biz_error(exc: BizError) -> dict:
    return envelope(exc.code, exc.message, None, exc.extra)


def api_response(
        *,
        code: int = SUCCESS_CODE,
        message: str = "OK",
        data: Any = None,
        http_status: int = status.HTTP_200_OK,
        extra: Optional[Mapping[str, Any]] = None,
) -> Response:
    return Response(envelope(code, message, data, extra), status=http_status)


def success(data: Any = None, message: str = "OK") -> Response:
    return api_response(data=data, message=message)


def created(data: Any = None, message: str = "Created") -> Response:
    return api_response(data=data, message=message, http_status=status.HTTP_201_CREATED)


def no_content(message: str = "No Content") -> Response:
    return api_response(message=message, http_status=status.HTTP_204_NO_CONTENT)


def fail(
        *,
        code: int,
        message: str,
        http_status: int = status.HTTP_400_BAD_REQUEST,
        data: Any = None,
) -> Response:
    """结构化的失败结果（未发布、提示已使用等）需要带 data 时使用，其余错误抛 BizError"""
    return api_response(code=code, message=message, data=data, http_status=http_status)


def page_success(items: list, *, page: int, page_size: int, total: int, has_next: bool,
                 has_previous: bool, total_pages: int | None = None) -> Response:
    """分页结果：data 为当前页列表，分页信息放在 extra"""
    meta = {
        "page": page,
        "page_size": page_size,
        "total": total,
        "total_pages": total_pages,
        "has_next": has_next,
        "has_previous": has_previous,
    }
    return api_response(data=items, extra={k: v for k, v in meta.items() if v is not None})
