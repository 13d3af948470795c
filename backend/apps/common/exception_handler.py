"""
DRF 全局异常处理器

- BizError 直接输出为 {code, message, data, extra}
- DRF 内置异常先换成对应的 BizError 再输出，其余 APIException 保留原状态码
- 其它异常视为程序错误：记录堆栈，返回 50000，不回显内部信息
- extra.retry_after 存在时补 Retry-After 响应头
"""

from __future__ import annotations

from typing import Any

from django.http import Http404
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from .exceptions import (
    AuthError,
    BizError,
    InfrastructureError,
    InternalError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    ValidationError,
)
from .infra.logger import get_logger, logger_extra
from .response import api_response, payload_from_biz_error
from .utils.request_context import current_request_id

logger = get_logger(__name__)

INTERNAL_ERROR_CODE = 50000

# DRF 异常 → 业务异常，按顺序匹配
_DRF_TO_BIZ: tuple[tuple[tuple[type[Exception], ...], type[BizError]], ...] = (
    ((drf_exceptions.AuthenticationFailed, drf_exceptions.NotAuthenticated), AuthError),
    ((drf_exceptions.PermissionDenied,), PermissionDeniedError),
    ((drf_exceptions.NotFound, Http404), NotFoundError),
)


def first_message(detail: Any) -> str:
    """取 DRF detail（str / list / dict 任意嵌套）中的第一条错误信息"""
    while isinstance(detail, (list, dict)) and detail:
        detail = next(iter(detail.values())) if isinstance(detail, dict) else detail[0]
    return str(detail)


def to_biz_error(exc: Exception) -> BizError | None:
    if isinstance(exc, BizError):
        return exc
    detail = getattr(exc, "detail", None) or str(exc)
    message = first_message(detail) if detail else None
    if isinstance(exc, drf_exceptions.ValidationError):
        return ValidationError(message=message, extra={"errors": exc.detail})
    if isinstance(exc, drf_exceptions.Throttled):
        wait = exc.wait
        return RateLimitError(
            message=message,
            extra={"retry_after": int(wait) if wait is not None else None},
        )
    for drf_types, biz_cls in _DRF_TO_BIZ:
        if isinstance(exc, drf_types):
            return biz_cls(message=message)
    return None


def _biz_response(exc: BizError) -> Response:
    if isinstance(exc, (InternalError, InfrastructureError)):
        logger.error("服务端业务异常", extra=logger_extra({"error_code": exc.code, "error": exc.message}))
    headers = None
    retry_after = exc.extra.get("retry_after")
    if retry_after is not None:
        headers = {"Retry-After": str(int(retry_after))}
    return Response(payload_from_biz_error(exc), status=exc.http_status, headers=headers)


def custom_exception_handler(exc: Exception, context: dict) -> Response | None:
    biz_error = to_biz_error(exc)
    if biz_error is not None:
        return _biz_response(biz_error)

    drf_response = drf_exception_handler(exc, context)
    if drf_response is not None:
        # MethodNotAllowed / ParseError / UnsupportedMediaType 等
        return api_response(
            code=40000 if drf_response.status_code < 500 else INTERNAL_ERROR_CODE,
            message=first_message(drf_response.data),
            http_status=drf_response.status_code,
            extra={"raw": drf_response.data},
        )

    request = context.get("request")
    view = context.get("view")
    logger.exception(
        "接口未处理异常",
        exc_info=exc,
        extra=logger_extra({"method": getattr(request, "method", None), "view": type(view).__name__ if view else None}),
    )
    return api_response(
        code=INTERNAL_ERROR_CODE,
        message="内部服务器错误，请联系管理员或稍后重试",
        http_status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        extra={"request_id": current_request_id()},
    )
