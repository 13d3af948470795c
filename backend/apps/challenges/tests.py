from __future__ import annotations

import threading

from django.core.cache import cache
from django.db import connection
from django.test import TestCase, TransactionTestCase, override_settings
from rest_framework.test import APITestCase

from apps.accounts.models import User
from apps.common.exceptions import FlagVerificationError, NotFoundError, PermissionDeniedError, ValidationError
from apps.common.tests_utils import AuthenticatedAPIMixin

from .flags import FlagVerifier
from .hint_service import HintAlreadyUsed, HintEconomyService, HintNotFound, HintUnlocked
from .models import Challenge, ChallengeSolve, HintUsage
from .repo import HintUsageRepo
from .schemas import ChallengeCreateSchema, ChallengePublishSchema, ChallengeUpdateSchema
from .services import (
    ChallengeCreateService,
    ChallengeDeleteService,
    ChallengePublishService,
    ChallengeUpdateService,
)

# 测试用例：覆盖 Flag 校验、题目管理、提示扣分的服务逻辑与 API 冒烟

FAST_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]


def make_challenge(author: User, *, flag: str = "flag{yes}", points: int = 100, published: bool = True,
                   hints: list | None = None, **extra) -> Challenge:
    schema = ChallengeCreateSchema.from_dict(
        {
            "title": extra.pop("title", "baby web"),
            "category": extra.pop("category", "web"),
            "flag": flag,
            "points": points,
            "is_published": published,
            "hints": hints or [],
            **extra,
        },
        auto_validate=True,
    )
    return ChallengeCreateService().execute(author, schema)


@override_settings(PASSWORD_HASHERS=FAST_HASHERS)
class FlagVerifierTests(TestCase):
    def setUp(self) -> None:
        self.verifier = FlagVerifier()

    def test_hash_and_verify(self):
        stored = self.verifier.hash_flag("flag{yes}")
        self.assertNotIn("flag{yes}", stored)
        self.assertTrue(self.verifier.verify("flag{yes}", stored))
        self.assertFalse(self.verifier.verify("flag{no}", stored))

    def test_surrounding_whitespace_is_ignored_case_is_not(self):
        stored = self.verifier.hash_flag("  flag{Yes}\n")
        self.assertTrue(self.verifier.verify("flag{Yes}", stored))
        self.assertTrue(self.verifier.verify("\tflag{Yes}  ", stored))
        self.assertFalse(self.verifier.verify("flag{yes}", stored))

    def test_same_flag_gets_different_salts(self):
        self.assertNotEqual(self.verifier.hash_flag("flag{yes}"), self.verifier.hash_flag("flag{yes}"))

    def test_malformed_hash_raises(self):
        for broken in ("", "garbage", "!unusable", "md5$"):
            with self.subTest(stored=broken):
                with self.assertRaises(FlagVerificationError):
                    self.verifier.verify("flag{yes}", broken)

    def test_blank_flag_cannot_be_hashed(self):
        with self.assertRaises(ValidationError):
            self.verifier.hash_flag("   ")


@override_settings(PASSWORD_HASHERS=FAST_HASHERS)
class ChallengeCrudServiceTests(TestCase):
    def setUp(self) -> None:
        self.author = User.objects.create_user(username="author", email="author@example.com", password="x")
        self.other = User.objects.create_user(username="other", email="other@example.com", password="x")
        self.admin = User.objects.create_superuser(username="root", email="root@example.com", password="x")

    def test_create_hashes_flag_and_generates_slug(self):
        challenge = make_challenge(self.author, title="Baby Web", published=False)
        self.assertTrue(challenge.slug.startswith("baby-web-"))
        self.assertNotEqual(challenge.flag_hash, "flag{yes}")
        self.assertTrue(FlagVerifier().verify("flag{yes}", challenge.flag_hash))
        self.assertFalse(challenge.is_published)
        self.assertEqual(challenge.author, self.author)

    def test_create_rejects_bad_payload(self):
        for payload in (
            {"title": "", "category": "web", "flag": "f", "points": 10},
            {"title": "t", "category": "web", "flag": " ", "points": 10},
            {"title": "t", "category": "web", "flag": "f", "points": 0},
            {"title": "t", "category": "web", "flag": "f", "points": 10, "hints": [{"text": "x", "cost": -1}]},
            {"title": "t", "category": "web", "flag": "f", "points": 10, "difficulty": "insane"},
        ):
            with self.subTest(payload=payload):
                with self.assertRaises(ValidationError):
                    ChallengeCreateSchema.from_dict(payload, auto_validate=True)

    def test_only_author_can_update(self):
        challenge = make_challenge(self.author)
        schema = ChallengeUpdateSchema.from_dict({"points": 200}, auto_validate=True)
        with self.assertRaises(PermissionDeniedError):
            ChallengeUpdateService().execute(self.other, challenge.id, schema)
        updated = ChallengeUpdateService().execute(self.author, challenge.id, schema)
        self.assertEqual(updated.points, 200)

    def test_changing_flag_keeps_existing_solves(self):
        challenge = make_challenge(self.author)
        ChallengeSolve.objects.create(user=self.other, challenge=challenge, awarded_points=100)
        schema = ChallengeUpdateSchema.from_dict({"flag": "flag{new}"}, auto_validate=True)
        updated = ChallengeUpdateService().execute(self.author, challenge.id, schema)
        verifier = FlagVerifier()
        self.assertTrue(verifier.verify("flag{new}", updated.flag_hash))
        self.assertFalse(verifier.verify("flag{yes}", updated.flag_hash))
        self.assertTrue(ChallengeSolve.objects.filter(user=self.other, challenge=challenge).exists())

    def test_publish_by_author_or_admin(self):
        challenge = make_challenge(self.author, published=False)
        publish = ChallengePublishSchema.from_dict({"is_published": True}, auto_validate=True)
        with self.assertRaises(NotFoundError):
            ChallengePublishService().execute(self.other, challenge.id, publish)
        self.assertTrue(ChallengePublishService().execute(self.admin, challenge.id, publish).is_published)
        hide = ChallengePublishSchema.from_dict({"is_published": False}, auto_validate=True)
        self.assertFalse(ChallengePublishService().execute(self.author, challenge.id, hide).is_published)

    def test_delete_cascades_solves(self):
        challenge = make_challenge(self.author)
        ChallengeSolve.objects.create(user=self.other, challenge=challenge, awarded_points=100)
        with self.assertRaises(PermissionDeniedError):
            ChallengeDeleteService().execute(self.other, challenge.id)
        ChallengeDeleteService().execute(self.admin, challenge.id)
        self.assertFalse(Challenge.objects.filter(pk=challenge.id).exists())
        self.assertFalse(ChallengeSolve.objects.filter(challenge_id=challenge.id).exists())


class StalePrecheckUsageRepo(HintUsageRepo):
    """首次预检查返回“未使用”，模拟并发下另一请求刚刚写入使用记录"""

    def __init__(self):
        self.calls = 0

    def get_usage(self, user_id, challenge_id, hint_index):
        self.calls += 1
        if self.calls == 1:
            return None
        return super().get_usage(user_id, challenge_id, hint_index)


@override_settings(PASSWORD_HASHERS=FAST_HASHERS)
class HintEconomyTests(TestCase):
    def setUp(self) -> None:
        self.author = User.objects.create_user(username="author", email="author@example.com", password="x")
        self.player = User.objects.create_user(username="player", email="player@example.com", password="x")
        self.challenge = make_challenge(
            self.author,
            hints=[{"text": "look at robots.txt", "cost": 10}, {"text": "free hint", "cost": 0}],
        )
        self.service = HintEconomyService()

    def test_first_use_deducts_once(self):
        User.objects.filter(pk=self.player.pk).update(score=30)
        outcome = self.service.use_hint(self.player, self.challenge.id, 0)
        self.assertEqual(outcome, HintUnlocked(text="look at robots.txt", cost=10, score=20))

        again = self.service.use_hint(self.player, self.challenge.id, 0)
        self.assertEqual(again, HintAlreadyUsed(text="look at robots.txt"))
        self.player.refresh_from_db()
        self.assertEqual(self.player.score, 20)
        self.assertEqual(HintUsage.objects.filter(user=self.player).count(), 1)

    def test_no_floor_score_goes_negative(self):
        User.objects.filter(pk=self.player.pk).update(score=5)
        outcome = self.service.use_hint(self.player, self.challenge.id, 0)
        self.assertIsInstance(outcome, HintUnlocked)
        self.assertEqual(outcome.score, -5)
        self.player.refresh_from_db()
        self.assertEqual(self.player.score, -5)

    def test_free_hint_keeps_score(self):
        outcome = self.service.use_hint(self.player, self.challenge.id, 1)
        self.assertEqual(outcome, HintUnlocked(text="free hint", cost=0, score=0))

    def test_out_of_range_or_invisible(self):
        self.assertIsInstance(self.service.use_hint(self.player, self.challenge.id, 5), HintNotFound)
        self.assertIsInstance(self.service.use_hint(self.player, 999999, 0), HintNotFound)
        draft = make_challenge(self.author, published=False, hints=[{"text": "secret", "cost": 1}])
        self.assertIsInstance(self.service.use_hint(self.player, draft.id, 0), HintNotFound)
        self.assertIsInstance(self.service.use_hint(self.author, draft.id, 0), HintUnlocked)

    def test_concurrent_use_falls_back_to_already_used(self):
        """预检查漏判时由唯一约束兜底：不重复扣分，返回 AlreadyUsed"""
        HintUsage.objects.create(user=self.player, challenge=self.challenge, hint_index=0, cost=10)
        User.objects.filter(pk=self.player.pk).update(score=-10)

        service = HintEconomyService(usage_repo=StalePrecheckUsageRepo())
        outcome = service.use_hint(self.player, self.challenge.id, 0)
        self.assertEqual(outcome, HintAlreadyUsed(text="look at robots.txt"))
        self.player.refresh_from_db()
        self.assertEqual(self.player.score, -10)
        self.assertEqual(HintUsage.objects.filter(user=self.player).count(), 1)

    def test_list_hints_reveals_only_used(self):
        self.service.use_hint(self.player, self.challenge.id, 1)
        items = self.service.list_hints(self.player, self.challenge.id)
        self.assertEqual(
            items,
            [
                {"index": 0, "cost": 10, "text": None, "used": False},
                {"index": 1, "cost": 0, "text": "free hint", "used": True},
            ],
        )
        author_items = self.service.list_hints(self.author, self.challenge.id)
        self.assertEqual(author_items[0]["text"], "look at robots.txt")


@override_settings(PASSWORD_HASHERS=FAST_HASHERS)
class ConcurrentHintTests(TransactionTestCase):
    """多线程同时解锁同一提示：只扣一次分、只留一条使用记录"""

    workers = 6

    def setUp(self) -> None:
        self.author = User.objects.create_user(username="author", email="author@example.com", password="x")
        self.player = User.objects.create_user(username="player", email="player@example.com", password="x")
        self.challenge = make_challenge(self.author, hints=[{"text": "look at robots.txt", "cost": 10}])

    def test_concurrent_unlock_deducts_once(self):
        barrier = threading.Barrier(self.workers)
        outcomes: list = []
        errors: list = []
        lock = threading.Lock()

        def worker():
            try:
                service = HintEconomyService()
                player = User.objects.get(pk=self.player.pk)
                barrier.wait()
                outcome = service.use_hint(player, self.challenge.id, 0)
                with lock:
                    outcomes.append(outcome)
            except Exception as exc:  # noqa: BLE001
                with lock:
                    errors.append(exc)
            finally:
                connection.close()

        threads = [threading.Thread(target=worker) for _ in range(self.workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(sum(isinstance(o, HintUnlocked) for o in outcomes), 1)
        self.assertEqual(sum(isinstance(o, HintAlreadyUsed) for o in outcomes), self.workers - 1)
        self.player.refresh_from_db()
        self.assertEqual(self.player.score, -10)
        self.assertEqual(HintUsage.objects.filter(user=self.player).count(), 1)


@override_settings(PASSWORD_HASHERS=FAST_HASHERS)
class ChallengesAPITestCase(AuthenticatedAPIMixin, APITestCase):
    """题目接口冒烟：可见性、CRUD、发布与提示"""

    def setUp(self) -> None:
        cache.clear()
        self.author = self.make_user("author")
        self.player = self.make_user("player")
        self.published = make_challenge(
            self.author,
            title="published one",
            category="crypto",
            difficulty="easy",
            hints=[{"text": "try rot13", "cost": 5}],
        )
        self.draft = make_challenge(self.author, title="draft one", published=False)

    def test_anonymous_sees_only_published(self):
        resp = self.client.get("/api/challenges/")
        self.assertEqual(resp.status_code, 200)
        items = resp.data["data"]["items"]
        self.assertEqual([item["id"] for item in items], [self.published.id])
        self.assertEqual(items[0]["solve_count"], 0)
        self.assertNotIn("flag_hash", items[0])
        self.assertNotIn("flag", items[0])
        self.assertIsNone(items[0]["hints"][0]["text"])

    def test_author_sees_own_draft(self):
        client = self.auth_client("author")
        ids = {item["id"] for item in client.get("/api/challenges/").data["data"]["items"]}
        self.assertEqual(ids, {self.published.id, self.draft.id})

    def test_list_filters(self):
        resp = self.client.get("/api/challenges/", {"category": "crypto", "difficulty": "easy"})
        self.assertEqual(len(resp.data["data"]["items"]), 1)
        resp = self.client.get("/api/challenges/", {"search": "nothing-matches"})
        self.assertEqual(resp.data["data"]["items"], [])

    def test_draft_detail_is_404_for_others(self):
        client = self.auth_client("player")
        resp = client.get(f"/api/challenges/{self.draft.id}/")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.data["code"], 40400)

    def test_create_and_publish_via_api(self):
        client = self.auth_client("player")
        resp = client.post(
            "/api/challenges/",
            {"title": "pwn me", "category": "pwn", "flag": "flag{pwn}", "points": 300},
            format="json",
        )
        self.assertEqual(resp.status_code, 201)
        challenge_id = resp.data["data"]["challenge"]["id"]
        self.assertFalse(resp.data["data"]["challenge"]["is_published"])

        resp = client.post(f"/api/challenges/{challenge_id}/publish/", {"is_published": True}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.data["data"]["challenge"]["is_published"])

    def test_anonymous_cannot_create(self):
        resp = self.client.post("/api/challenges/", {"title": "x"}, format="json")
        self.assertEqual(resp.status_code, 401)

    def test_update_by_non_author_forbidden(self):
        client = self.auth_client("player")
        resp = client.patch(f"/api/challenges/{self.published.id}/", {"points": 1}, format="json")
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.data["code"], 40300)

    def test_use_hint_then_conflict(self):
        User.objects.filter(pk=self.player.pk).update(score=3)
        client = self.auth_client("player")
        url = f"/api/challenges/{self.published.id}/hints/0/"

        resp = client.post(url)
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data["data"], {"text": "try rot13", "cost": 5, "score": -2})

        resp = client.post(url)
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.data["code"], 48006)
        self.assertEqual(resp.data["data"]["text"], "try rot13")

        resp = client.post(f"/api/challenges/{self.published.id}/hints/3/")
        self.assertEqual(resp.status_code, 404)

        resp = client.get(f"/api/challenges/{self.published.id}/hints/")
        self.assertEqual(resp.data["data"]["items"][0]["used"], True)
