"""账户模块的 API 视图层

每个接口仅负责：
- 接收并校验参数（Schema）
- 调用对应业务 Service
- 使用统一响应封装成功结果
"""

from __future__ import annotations

from django.conf import settings
from drf_spectacular.utils import OpenApiExample, extend_schema, inline_serializer
from rest_framework import serializers, status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import TokenError as SimpleJWTTokenError
from rest_framework_simplejwt.tokens import RefreshToken

from apps.common import response
from apps.common.exceptions import TokenError, ValidationError
from apps.common.permissions import AllowAny, IsAuthenticated
from apps.common.schema_utils import api_response_schema, error_response_schema
from apps.common.throttles import LoginRateThrottle, RegisterRateThrottle

from .schemas import LoginSchema, RegisterSchema
from .services import (
    LoginService,
    RegisterService,
    UserChallengesService,
    UserProfileService,
    serialize_user,
)


def _set_jwt_cookie(resp: Response, access_token: str) -> None:
    """根据配置决定是否把 access token 写入 HttpOnly Cookie"""
    if getattr(settings, "JWT_USE_COOKIE", False):
        cookie_name = getattr(settings, "JWT_ACCESS_COOKIE_NAME", "ctf_access_token")
        resp.set_cookie(
            cookie_name,
            access_token,
            httponly=True,
            secure=not settings.DEBUG,
            samesite="Lax",
            max_age=int(settings.SIMPLE_JWT["ACCESS_TOKEN_LIFETIME"].total_seconds()),
        )


def _to_payload(data) -> dict:
    """将 request.data 转为普通 dict（兼容 QueryDict）"""
    if hasattr(data, "dict"):
        return data.dict()
    return dict(data)


def user_summary_serializer() -> serializers.Serializer:
    return inline_serializer(
        name="UserSummary",
        fields={
            "id": serializers.IntegerField(),
            "username": serializers.CharField(),
            "nickname": serializers.CharField(),
            "score": serializers.IntegerField(),
            "email": serializers.EmailField(required=False),
        },
    )


class RegisterView(APIView):
    """用户注册接口：公开，按 IP 限流"""

    permission_classes = [AllowAny]
    throttle_classes = [RegisterRateThrottle]

    @extend_schema(
        tags=["accounts-auth"],
        summary="注册账户",
        request=inline_serializer(
            name="RegisterRequest",
            fields={
                "username": serializers.CharField(),
                "email": serializers.EmailField(),
                "password": serializers.CharField(),
                "confirm_password": serializers.CharField(),
                "nickname": serializers.CharField(required=False),
            },
        ),
        responses={
            status.HTTP_201_CREATED: api_response_schema("Register", {"user": user_summary_serializer()}),
            status.HTTP_409_CONFLICT: error_response_schema(),
        },
    )
    def post(self, request: Request) -> Response:
        schema = RegisterSchema.from_dict(_to_payload(request.data), auto_validate=True)
        user = RegisterService().execute(schema)
        return response.created({"user": serialize_user(user)}, message="注册成功")


class LoginView(APIView):
    """用户登录接口：返回 JWT（刷新/访问）"""

    permission_classes = [AllowAny]
    throttle_classes = [LoginRateThrottle]

    @extend_schema(
        tags=["accounts-auth"],
        summary="登录账户",
        request=inline_serializer(
            name="LoginRequest",
            fields={
                "identifier": serializers.CharField(help_text="用户名或邮箱"),
                "password": serializers.CharField(),
            },
        ),
        responses=api_response_schema(
            "Login",
            {
                "access": serializers.CharField(help_text="访问令牌"),
                "refresh": serializers.CharField(help_text="刷新令牌"),
                "user": user_summary_serializer(),
            },
        ),
        examples=[
            OpenApiExample(
                "登录请求示例",
                value={"identifier": "alice 或 alice@example.com", "password": "********"},
            )
        ],
    )
    def post(self, request: Request) -> Response:
        schema = LoginSchema.from_dict(_to_payload(request.data))
        data = LoginService().execute(schema)
        resp = response.success(data, message="登录成功")
        _set_jwt_cookie(resp, access_token=str(data["access"]))
        return resp


class TokenRefreshView(APIView):
    """刷新访问令牌：使用 refresh 获取新的 access"""

    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(
        summary="刷新访问令牌",
        tags=["accounts-auth"],
        request=inline_serializer(name="TokenRefreshRequest", fields={"refresh": serializers.CharField()}),
        responses=api_response_schema(
            "TokenRefresh",
            {"access": serializers.CharField(help_text="新的访问令牌"), "refresh": serializers.CharField()},
        ),
    )
    def post(self, request: Request) -> Response:
        refresh_token = _to_payload(request.data).get("refresh")
        if not refresh_token:
            raise ValidationError(message="缺少 refresh 字段")
        try:
            token = RefreshToken(refresh_token)
            access = str(token.access_token)
        except SimpleJWTTokenError as exc:
            raise TokenError(message="刷新令牌无效或已过期，请重新登录") from exc

        resp = response.success({"access": access, "refresh": str(token)}, message="刷新成功")
        _set_jwt_cookie(resp, access_token=access)
        return resp


def profile_response_schema(name: str) -> serializers.Serializer:
    return api_response_schema(
        name,
        {
            "user": user_summary_serializer(),
            "rank": serializers.IntegerField(help_text="当前名次，管理员为 0"),
            "solve_count": serializers.IntegerField(),
            "solves": serializers.ListField(child=serializers.DictField()),
        },
    )


class ProfileView(APIView):
    """当前用户资料：积分、排名、解题情况"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="获取当前用户资料",
        tags=["accounts-profile"],
        request=None,
        responses=profile_response_schema("ProfileDetail"),
    )
    def get(self, request: Request) -> Response:
        data = UserProfileService().execute(request.user.pk, viewer=request.user)
        return response.success(data)


class UserProfileView(APIView):
    """用户公开资料"""

    permission_classes = [AllowAny]

    @extend_schema(
        summary="获取用户公开资料",
        tags=["accounts-profile"],
        request=None,
        responses={
            status.HTTP_200_OK: profile_response_schema("PublicProfile"),
            status.HTTP_404_NOT_FOUND: error_response_schema(),
        },
    )
    def get(self, request: Request, user_id: int) -> Response:
        data = UserProfileService().execute(user_id, viewer=request.user)
        return response.success(data)


class UserChallengesView(APIView):
    """用户出题列表：他人只看到已发布的题目"""

    permission_classes = [AllowAny]

    @extend_schema(
        summary="获取用户出题列表",
        tags=["accounts-profile"],
        request=None,
        responses={
            status.HTTP_200_OK: api_response_schema(
                "UserChallenges",
                {"items": serializers.ListField(child=serializers.DictField())},
            ),
            status.HTTP_404_NOT_FOUND: error_response_schema(),
        },
    )
    def get(self, request: Request, user_id: int) -> Response:
        items = UserChallengesService().execute(user_id, viewer=request.user)
        return response.success({"items": items})
