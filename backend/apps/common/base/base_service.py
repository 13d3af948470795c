from __future__ import annotations

from typing import Generic, TypeVar

from django.db import DatabaseError, transaction

from apps.common.exceptions import BizError, StoreError
from apps.common.infra.logger import get_logger

logger = get_logger(__name__)

ResultT = TypeVar("ResultT")


class BaseService(Generic[ResultT]):
    """
    服务基类，入口固定为 execute：validate → perform（默认包在事务里）→ 出错时 handle_error

    - 服务不接触 request，参数都是普通对象或 Schema
    - 需要自行控制事务的服务（失败也要落库的场景）把 atomic_enabled 设为 False
    """

    atomic_enabled: bool = True

    def validate(self, *args, **kwargs) -> None:
        return None

    def perform(self, *args, **kwargs) -> ResultT:
        raise NotImplementedError

    def execute(self, *args, **kwargs) -> ResultT:
        try:
            self.validate(*args, **kwargs)
            if not self.atomic_enabled:
                return self.perform(*args, **kwargs)
            with transaction.atomic():
                return self.perform(*args, **kwargs)
        except Exception as exc:
            return self.handle_error(exc)

    def handle_error(self, exc: Exception) -> ResultT:
        """业务异常原样抛出；数据库异常转 StoreError；其余异常交给全局处理器按 500 返回"""
        if isinstance(exc, BizError):
            raise exc
        if isinstance(exc, DatabaseError):
            logger.exception("持久化失败，转换为 StoreError", exc_info=exc)
            raise StoreError() from exc
        logger.exception("服务执行出现未预期异常", exc_info=exc)
        raise exc
