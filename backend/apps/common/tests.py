"""
公共模块单测：
- 统一响应结构与异常处理器
- Service 基类的异常转换、Schema 入参过滤
- 日志脱敏、请求上下文与健康检查
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import ClassVar
from unittest import mock

import redis
from django.db import OperationalError
from django.http import Http404, HttpResponse
from django.test import RequestFactory, SimpleTestCase, TestCase
from rest_framework.exceptions import NotAuthenticated, Throttled, ValidationError as DRFValidationError

from apps.accounts.models import User
from apps.accounts.repo import UserRepo
from apps.common.base.base_schema import BaseSchema
from apps.common.base.base_service import BaseService
from apps.common.exception_handler import custom_exception_handler
from apps.common.exceptions import (
    CacheUnavailableError,
    ConflictError,
    NotFoundError,
    StoreError,
    SubmissionRateLimitError,
    ValidationError,
)
from apps.common.infra import redis_client
from apps.common.infra.logger import PlainLogFormatter, logger_extra
from apps.common.middleware import RequestContextMiddleware, get_client_ip
from apps.common.response import fail, page_success, success
from apps.common.utils.redis_keys import submission_counter_key, submission_window_key
from apps.common.utils.request_context import (
    bind_request,
    bind_user,
    clear_request_context,
    current_request_id,
    get_request_context,
)


class ResponseEnvelopeTests(SimpleTestCase):
    def test_success_envelope(self):
        resp = success({"ok": True})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data, {"code": 0, "message": "OK", "data": {"ok": True}})

    def test_fail_keeps_data(self):
        resp = fail(code=48001, message="当前题目暂不可用", data={"status": "not_published"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["code"], 48001)
        self.assertEqual(resp.data["data"], {"status": "not_published"})
        self.assertNotIn("extra", resp.data)

    def test_page_success(self):
        resp = page_success(items=[1, 2], page=1, page_size=2, total=5, has_next=True, has_previous=False)
        self.assertEqual(resp.data["data"], [1, 2])
        self.assertEqual(resp.data["extra"]["total"], 5)
        self.assertTrue(resp.data["extra"]["has_next"])


class ExceptionHandlerTests(SimpleTestCase):
    def test_biz_error(self):
        resp = custom_exception_handler(ConflictError(message="邮箱已被注册"), {})
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.data["code"], 40900)
        self.assertEqual(resp.data["message"], "邮箱已被注册")

    def test_rate_limit_sets_retry_after(self):
        resp = custom_exception_handler(SubmissionRateLimitError(extra={"retry_after": 17}), {})
        self.assertEqual(resp.status_code, 429)
        self.assertEqual(resp["Retry-After"], "17")
        self.assertEqual(resp.data["extra"]["retry_after"], 17)

    def test_drf_exceptions_are_mapped(self):
        resp = custom_exception_handler(DRFValidationError({"flag": ["不能为空"]}), {})
        self.assertEqual(resp.data["code"], 40002)
        self.assertEqual(resp.data["message"], "不能为空")

        resp = custom_exception_handler(NotAuthenticated(), {})
        self.assertEqual(resp.status_code, 401)

        resp = custom_exception_handler(Throttled(wait=3), {})
        self.assertEqual(resp.status_code, 429)
        self.assertEqual(resp["Retry-After"], "3")

    def test_django_404_is_mapped(self):
        resp = custom_exception_handler(Http404(), {})
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.data["code"], 40400)
        self.assertEqual(resp.data["message"], "资源不存在")

    def test_unexpected_exception_is_500(self):
        resp = custom_exception_handler(RuntimeError("boom"), {})
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.data["code"], 50000)
        self.assertNotIn("boom", resp.data["message"])

    def test_store_error_is_503(self):
        resp = custom_exception_handler(StoreError(), {})
        self.assertEqual(resp.status_code, 503)
        self.assertEqual(resp.data["code"], 50310)


class _RaisingService(BaseService[None]):
    atomic_enabled = False

    def __init__(self, exc: Exception):
        self.exc = exc

    def perform(self):
        raise self.exc


class BaseServiceTests(TestCase):
    def test_biz_error_passes_through(self):
        with self.assertRaises(ConflictError):
            _RaisingService(ConflictError()).execute()

    def test_database_error_becomes_store_error(self):
        with self.assertRaises(StoreError):
            _RaisingService(OperationalError("database is locked")).execute()

    def test_other_errors_propagate(self):
        with self.assertRaises(KeyError):
            _RaisingService(KeyError("x")).execute()


@dataclass
class _NameSchema(BaseSchema):
    auto_validate: ClassVar[bool] = True
    name: str = ""

    def validate(self) -> None:
        if not self.name:
            raise ValidationError(message="name 必填")


class BaseSchemaTests(SimpleTestCase):
    def test_unknown_keys_are_ignored(self):
        schema = _NameSchema.from_dict({"name": "alice", "is_staff": True})
        self.assertEqual(schema.to_dict(), {"name": "alice"})

    def test_validation_runs(self):
        with self.assertRaises(ValidationError):
            _NameSchema.from_dict({})


class LoggingAndHelpersTests(SimpleTestCase):
    def test_logger_extra_masks_secrets(self):
        masked = logger_extra({"flag": "flag{x}", "password": "p", "challenge_id": 3})
        self.assertEqual(masked, {"flag": "***", "password": "***", "challenge_id": 3})
        self.assertEqual(logger_extra(None), {})

    def test_client_ip(self):
        factory = RequestFactory()
        request = factory.get("/", HTTP_X_FORWARDED_FOR="10.1.1.1, 172.16.0.1", REMOTE_ADDR="127.0.0.1")
        self.assertEqual(get_client_ip(request), "10.1.1.1")
        self.assertEqual(get_client_ip(factory.get("/", REMOTE_ADDR="127.0.0.2")), "127.0.0.2")

    def test_window_keys(self):
        self.assertEqual(submission_window_key(3), "flag_submit:user:3")
        self.assertEqual(submission_window_key(3, 7), "flag_submit:user:3:challenge:7")
        self.assertEqual(submission_counter_key(3, 7, 120), "flag_submit:user:3:challenge:7:120")


class HealthCheckTests(TestCase):
    def test_health(self):
        resp = self.client.get("/health/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["data"], {"status": "ok", "database": "ok"})


class BaseRepoTests(TestCase):
    def test_get_or_raise(self):
        user = User.objects.create_user(username="alice", email="alice@example.com", password="x")
        self.assertEqual(UserRepo().get_or_raise(user.pk), user)
        for bad in (999999, "abc", None):
            with self.subTest(pk=bad):
                with self.assertRaises(NotFoundError):
                    UserRepo().get_or_raise(bad)


class RequestContextTests(SimpleTestCase):
    def tearDown(self) -> None:
        clear_request_context()

    def test_bind_user_keeps_request_fields(self):
        bind_request(request_id="abc123", path="/api/submissions/", ip="10.0.0.1")
        bind_user(mock.Mock(pk=7, username="alice"))
        self.assertEqual(
            get_request_context(),
            {"request_id": "abc123", "user_id": 7, "username": "alice", "path": "/api/submissions/", "ip": "10.0.0.1"},
        )
        clear_request_context()
        self.assertEqual(current_request_id(), "")

    def test_request_id_is_generated(self):
        ctx = bind_request()
        self.assertEqual(len(ctx.request_id), 12)
        self.assertEqual(current_request_id(), ctx.request_id)

    def test_plain_formatter_includes_context(self):
        bind_request(request_id="r1", path="/health/", ip="127.0.0.1")
        bind_user(mock.Mock(pk=3, username="bob"))
        record = logging.LogRecord("apps.test", logging.INFO, __file__, 1, "hello", None, None)
        self.assertTrue(PlainLogFormatter().format(record).endswith("hello [bob|3|127.0.0.1|/health/]"))


class RequestContextMiddlewareTests(SimpleTestCase):
    def test_request_id_is_echoed_and_cleared(self):
        seen = {}

        def view(request):
            seen.update(get_request_context())
            return HttpResponse("ok")

        middleware = RequestContextMiddleware(view)
        request = RequestFactory().get("/api/challenges/", HTTP_X_REQUEST_ID="req-42", REMOTE_ADDR="10.2.2.2")
        resp = middleware(request)
        self.assertEqual(resp["X-Request-ID"], "req-42")
        self.assertEqual((seen["request_id"], seen["path"], seen["ip"]), ("req-42", "/api/challenges/", "10.2.2.2"))
        self.assertEqual(current_request_id(), "")

    def test_context_cleared_when_view_raises(self):
        def view(request):
            raise RuntimeError("boom")

        with self.assertRaises(RuntimeError):
            RequestContextMiddleware(view)(RequestFactory().get("/"))
        self.assertEqual(current_request_id(), "")


class RedisClientTests(SimpleTestCase):
    def test_errors_become_cache_unavailable_and_log_masked_extra(self):
        broken = mock.Mock()
        broken.pipeline.return_value.execute.side_effect = redis.ConnectionError("down")
        broken.decrby.side_effect = redis.ConnectionError("down")
        with mock.patch.object(redis_client, "_get_client", return_value=broken), \
                mock.patch.object(redis_client._logger, "warning") as warning:
            with self.assertRaises(CacheUnavailableError):
                redis_client.incr("flag_submit:user:1:60", ex=60)
            with self.assertRaises(CacheUnavailableError):
                redis_client.decr("flag_submit:user:1:60")
        self.assertEqual(warning.call_count, 2)
        for call in warning.call_args_list:
            self.assertEqual(call.kwargs["extra"], {"redis_key": "flag_submit:user:1:60"})
