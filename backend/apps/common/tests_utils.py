from __future__ import annotations

from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

User = get_user_model()


class AuthenticatedAPIMixin:
    """接口测试辅助：建号，并通过登录接口换取带 Bearer 令牌的客户端"""

    login_url = "/api/accounts/auth/login/"
    default_password = "Str0ng-Pass-42"

    def make_user(self, username: str, *, is_staff: bool = False, score: int = 0, **extra):
        extra.setdefault("email", f"{username}@example.com")
        password = extra.pop("password", self.default_password)
        return User.objects.create_user(username=username, password=password, is_staff=is_staff,
                                        score=score, **extra)

    def obtain_token(self, identifier: str, password: str | None = None) -> str:
        resp = self.client.post(
            self.login_url,
            {"identifier": identifier, "password": password or self.default_password},
            format="json",
        )
        assert resp.status_code == 200, f"登录失败 {resp.status_code}: {resp.content!r}"
        return resp.data["data"]["access"]

    def auth_client(self, identifier: str, password: str | None = None) -> APIClient:
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {self.obtain_token(identifier, password)}")
        return client
