from __future__ import annotations

from apps.common.utils.request_context import bind_request, clear_request_context

REQUEST_ID_HEADER = "X-Request-ID"


def get_client_ip(request) -> str:
    """客户端地址：反向代理下取 X-Forwarded-For 的第一跳"""
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    first_hop = forwarded.split(",")[0].strip()
    return first_hop or request.META.get("REMOTE_ADDR", "")


class RequestContextMiddleware:
    """
    为每个请求绑定上下文（request_id、路径、IP），并在响应头回写 X-Request-ID
    用户信息由 JWT 认证在视图执行前补写
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        ctx = bind_request(
            request_id=request.headers.get(REQUEST_ID_HEADER, "")[:64],
            path=request.path,
            ip=get_client_ip(request),
        )
        try:
            response = self.get_response(request)
        finally:
            clear_request_context()
        response[REQUEST_ID_HEADER] = ctx.request_id
        return response
