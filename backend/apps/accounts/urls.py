from __future__ import annotations

from django.urls import path

from .views import (
    LoginView,
    ProfileView,
    RegisterView,
    TokenRefreshView,
    UserChallengesView,
    UserProfileView,
)

app_name = "accounts"

urlpatterns = [
    # 注册：公开接口，校验用户名/邮箱唯一
    path("auth/register/", RegisterView.as_view(), name="register"),
    # 登录：返回 JWT，支持用户名或邮箱
    path("auth/login/", LoginView.as_view(), name="login"),
    # 刷新访问令牌：使用 refresh 获取新的 access
    path("auth/refresh/", TokenRefreshView.as_view(), name="token-refresh"),
    # 当前用户资料
    path("me/", ProfileView.as_view(), name="profile"),
    # 用户公开资料：积分、排名、已解题目
    path("users/<int:user_id>/", UserProfileView.as_view(), name="user-profile"),
    # 用户出题列表：他人只看已发布
    path("users/<int:user_id>/challenges/", UserChallengesView.as_view(), name="user-challenges"),
]
