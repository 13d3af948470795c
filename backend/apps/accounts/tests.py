from __future__ import annotations

from django.core.cache import cache
from rest_framework.test import APITestCase

from apps.accounts.models import User
from apps.challenges.models import Challenge, ChallengeSolve
from apps.common.tests_utils import AuthenticatedAPIMixin


class AccountsAPITestCase(AuthenticatedAPIMixin, APITestCase):
    """
    账户模块接口冒烟测试：
    - 覆盖注册、登录、刷新令牌、个人资料与公开资料
    """

    @classmethod
    def setUpTestData(cls):
        cls.user = User.objects.create_user(
            username="tester",
            email="tester@example.com",
            password="Str0ng-Pass-42",
        )

    def setUp(self):
        # 清理 throttle 缓存，避免跨用例触发限流
        cache.clear()

    def test_register_and_login(self):
        """注册成功后可用新账号登录，初始积分为 0"""
        resp = self.client.post(
            "/api/accounts/auth/register/",
            {
                "username": "reguser",
                "email": "Reg@Example.com",
                "password": "Str0ng-Pass-42",
                "confirm_password": "Str0ng-Pass-42",
            },
            format="json",
        )
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data["code"], 0)
        self.assertEqual(resp.data["data"]["user"]["score"], 0)
        self.assertEqual(resp.data["data"]["user"]["nickname"], "reguser")
        self.assertEqual(User.objects.get(username="reguser").email, "reg@example.com")

        token = self.obtain_token("reguser")
        self.assertTrue(token)
        # 邮箱登录
        self.assertTrue(self.obtain_token("reg@example.com"))

    def test_register_with_duplicate_email_should_fail(self):
        """重复邮箱注册返回 409 业务错误"""
        resp = self.client.post(
            "/api/accounts/auth/register/",
            {
                "username": "dupuser",
                "email": self.user.email,
                "password": "Str0ng-Pass-42",
                "confirm_password": "Str0ng-Pass-42",
            },
            format="json",
        )
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.data["code"], 40900)

    def test_register_rejects_mismatched_password(self):
        resp = self.client.post(
            "/api/accounts/auth/register/",
            {
                "username": "mismatch",
                "email": "mismatch@example.com",
                "password": "Str0ng-Pass-42",
                "confirm_password": "Str0ng-Pass-43",
            },
            format="json",
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["code"], 40002)
        self.assertFalse(User.objects.filter(username="mismatch").exists())

    def test_login_with_wrong_password(self):
        resp = self.client.post(
            "/api/accounts/auth/login/",
            {"identifier": "tester", "password": "wrong-password"},
            format="json",
        )
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.data["code"], 40101)
        self.assertNotIn("access", resp.data.get("data") or {})

    def test_login_inactive_user(self):
        self.make_user("sleeper", is_active=False)
        resp = self.client.post(
            "/api/accounts/auth/login/",
            {"identifier": "sleeper", "password": self.default_password},
            format="json",
        )
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.data["code"], 40103)

    def test_refresh_token(self):
        resp = self.client.post(
            "/api/accounts/auth/login/",
            {"identifier": "tester", "password": self.default_password},
            format="json",
        )
        refresh = resp.data["data"]["refresh"]
        resp = self.client.post("/api/accounts/auth/refresh/", {"refresh": refresh}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.data["data"]["access"])

        resp = self.client.post("/api/accounts/auth/refresh/", {"refresh": "not-a-token"}, format="json")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.data["code"], 40102)

    def test_profile_requires_login(self):
        resp = self.client.get("/api/accounts/me/")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.data["code"], 40100)

    def test_profile_includes_rank_and_solves(self):
        """个人资料包含积分、排名、解题数与已解题目"""
        author = self.make_user("author")
        challenge = Challenge.objects.create(
            title="warmup",
            slug="warmup-abc123",
            category="misc",
            points=50,
            flag_hash="unused",
            is_published=True,
            author=author,
        )
        ChallengeSolve.objects.create(user=self.user, challenge=challenge, awarded_points=50)
        User.objects.filter(pk=self.user.pk).update(score=50)
        self.make_user("leader", score=80)

        client = self.auth_client("tester")
        resp = client.get("/api/accounts/me/")
        self.assertEqual(resp.status_code, 200)
        data = resp.data["data"]
        self.assertEqual(data["user"]["score"], 50)
        self.assertEqual(data["user"]["email"], "tester@example.com")
        self.assertEqual(data["rank"], 2)
        self.assertEqual(data["solve_count"], 1)
        self.assertEqual(data["solves"][0]["challenge_id"], challenge.id)

    def test_public_profile_hides_private_fields(self):
        resp = self.client.get(f"/api/accounts/users/{self.user.pk}/")
        self.assertEqual(resp.status_code, 200)
        self.assertNotIn("email", resp.data["data"]["user"])
        self.assertEqual(resp.data["data"]["rank"], 1)

    def test_public_profile_unknown_user(self):
        resp = self.client.get("/api/accounts/users/999999/")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.data["code"], 40400)

    def test_user_challenges_respect_visibility(self):
        """他人只看到已发布的题目，作者本人可看到草稿"""
        author = self.make_user("author")
        for slug, published in (("public-1", True), ("draft-1", False)):
            Challenge.objects.create(
                title=slug,
                slug=slug,
                category="web",
                points=100,
                flag_hash="unused",
                is_published=published,
                author=author,
            )
        url = f"/api/accounts/users/{author.pk}/challenges/"

        resp = self.client.get(url)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([item["slug"] for item in resp.data["data"]["items"]], ["public-1"])

        resp = self.auth_client("tester").get(url)
        self.assertEqual([item["slug"] for item in resp.data["data"]["items"]], ["public-1"])

        resp = self.auth_client("author").get(url)
        self.assertEqual(
            sorted(item["slug"] for item in resp.data["data"]["items"]),
            ["draft-1", "public-1"],
        )

        resp = self.client.get(f"/api/accounts/users/{self.user.pk}/challenges/")
        self.assertEqual(resp.data["data"]["items"], [])

    def test_user_challenges_unknown_user(self):
        resp = self.client.get("/api/accounts/users/999999/challenges/")
        self.assertEqual(resp.status_code, 404)
