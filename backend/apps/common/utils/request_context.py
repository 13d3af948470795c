"""
请求上下文：一次请求内的 request_id、用户与来源信息

- 整个上下文是一个不可变快照，存放在单个 ContextVar 中，线程/协程之间互不可见
- 中间件在请求开始时绑定，JWT 认证成功后补写用户，请求结束时清空
- 日志格式化器与异常处理器读取这里的字段
"""

from __future__ import annotations

import contextvars
import uuid
from dataclasses import asdict, dataclass, replace
from typing import Any, Optional


@dataclass(frozen=True)
class RequestContext:
    request_id: str = ""
    user_id: Optional[int] = None
    username: str = ""
    path: str = ""
    ip: str = ""


_EMPTY = RequestContext()
_current: contextvars.ContextVar[RequestContext] = contextvars.ContextVar("request_context", default=_EMPTY)


def generate_request_id() -> str:
    return uuid.uuid4().hex[:12]


def bind_request(*, request_id: str = "", path: str = "", ip: str = "") -> RequestContext:
    """请求开始时绑定新上下文，未携带 request_id 时生成一个"""
    ctx = RequestContext(request_id=request_id or generate_request_id(), path=path, ip=ip)
    _current.set(ctx)
    return ctx


def bind_user(user: Any) -> None:
    """认证完成后补写用户；DRF 认证晚于中间件执行"""
    _current.set(
        replace(
            _current.get(),
            user_id=getattr(user, "pk", None),
            username=getattr(user, "username", "") or "",
        )
    )


def clear_request_context() -> None:
    _current.set(_EMPTY)


def current_request_id() -> str:
    return _current.get().request_id


def get_request_context() -> dict:
    return asdict(_current.get())
