from __future__ import annotations

import threading
from datetime import timedelta

from django.db import connection, transaction
from django.test import TestCase, TransactionTestCase, override_settings
from django.utils import timezone
from rest_framework.test import APITestCase

from apps.accounts.models import User
from apps.challenges.models import Challenge, ChallengeSolve
from apps.common.exceptions import NotFoundError, ValidationError

from .scoring import ScoringEngine
from .services import LeaderboardService, UserRankService, parse_limit

FAST_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]


def make_player(username: str, *, score: int = 0, joined_offset: int = 0, **extra) -> User:
    user = User.objects.create_user(username=username, email=f"{username}@example.com", password="x", **extra)
    User.objects.filter(pk=user.pk).update(
        score=score,
        date_joined=timezone.now() - timedelta(days=30) + timedelta(minutes=joined_offset),
    )
    user.refresh_from_db()
    return user


def give_solves(user: User, author: User, count: int) -> None:
    for _ in range(count):
        challenge = Challenge.objects.create(
            title="solved",
            slug=f"solved-{Challenge.objects.count()}",
            category="misc",
            flag_hash="unused",
            is_published=True,
            author=author,
        )
        ChallengeSolve.objects.create(user=user, challenge=challenge, awarded_points=0)


@override_settings(PASSWORD_HASHERS=FAST_HASHERS)
class ScoringEngineTests(TestCase):
    def setUp(self) -> None:
        self.engine = ScoringEngine()
        self.user = make_player("alice", score=10)

    def test_award_updates_instance_and_returns_score(self):
        self.assertEqual(self.engine.award(self.user, 25), 35)
        self.assertEqual(self.user.score, 35)
        self.assertEqual(self.engine.award(self.user.pk, -5), 30)

    def test_no_floor(self):
        self.assertEqual(self.engine.award(self.user, -40), -30)
        self.user.refresh_from_db()
        self.assertEqual(self.user.score, -30)

    def test_zero_delta_reads_current_score(self):
        self.assertEqual(self.engine.award(self.user, 0), 10)

    def test_rejects_non_integer_delta(self):
        for delta in (True, 1.5, "3", None):
            with self.subTest(delta=delta):
                with self.assertRaises(ValidationError):
                    self.engine.award(self.user, delta)
        self.user.refresh_from_db()
        self.assertEqual(self.user.score, 10)

    def test_unknown_user(self):
        with self.assertRaises(NotFoundError):
            self.engine.award(999999, 5)
        with self.assertRaises(NotFoundError):
            self.engine.award(999999, 0)

    def test_award_rolls_back_with_caller_transaction(self):
        with self.assertRaises(RuntimeError):
            with transaction.atomic():
                self.engine.award(self.user, 50)
                raise RuntimeError("abort")
        self.user.refresh_from_db()
        self.assertEqual(self.user.score, 10)


@override_settings(PASSWORD_HASHERS=FAST_HASHERS)
class ConcurrentAwardTests(TransactionTestCase):
    """并发加分不丢更新"""

    workers = 8

    def test_concurrent_awards_are_not_lost(self):
        user = make_player("racer")
        barrier = threading.Barrier(self.workers)
        errors: list = []

        def worker():
            try:
                barrier.wait()
                ScoringEngine().award(user.pk, 3)
            except Exception as exc:  # noqa: BLE001
                errors.append(exc)
            finally:
                connection.close()

        threads = [threading.Thread(target=worker) for _ in range(self.workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        user.refresh_from_db()
        self.assertEqual(user.score, 3 * self.workers)


@override_settings(PASSWORD_HASHERS=FAST_HASHERS)
class LeaderboardServiceTests(TestCase):
    def setUp(self) -> None:
        self.author = make_player("author", is_staff=True)
        # 同分时解题数多者在前；再同则注册早者在前
        self.top = make_player("top", score=300, joined_offset=50)
        self.more_solves = make_player("more_solves", score=200, joined_offset=40)
        self.early = make_player("early", score=200, joined_offset=10)
        self.late = make_player("late", score=200, joined_offset=20)
        self.negative = make_player("negative", score=-5, joined_offset=0)
        give_solves(self.more_solves, self.author, 2)
        give_solves(self.early, self.author, 1)
        give_solves(self.late, self.author, 1)

        make_player("root", score=9999, is_superuser=True)
        make_player("gone", score=5000, is_active=False)

    def test_order_and_exclusions(self):
        entries = LeaderboardService().execute()
        self.assertEqual(
            [entry.username for entry in entries],
            ["top", "more_solves", "early", "late", "negative"],
        )
        self.assertEqual([entry.rank for entry in entries], [1, 2, 3, 4, 5])
        self.assertEqual(entries[1].solve_count, 2)
        self.assertEqual(entries[4].score, -5)

    def test_limit(self):
        entries = LeaderboardService().execute("2")
        self.assertEqual([entry.username for entry in entries], ["top", "more_solves"])

    def test_entry_to_dict(self):
        entry = LeaderboardService().execute(1)[0]
        self.assertEqual(
            entry.to_dict(),
            {
                "rank": 1,
                "user_id": self.top.pk,
                "username": "top",
                "nickname": "top",
                "score": 300,
                "solve_count": 0,
            },
        )

    @override_settings(LEADERBOARD_DEFAULT_LIMIT=3, LEADERBOARD_MAX_LIMIT=4)
    def test_parse_limit(self):
        self.assertEqual(parse_limit(None), 3)
        self.assertEqual(parse_limit(""), 3)
        self.assertEqual(parse_limit("2"), 2)
        self.assertEqual(parse_limit(100), 4)
        for value in ("abc", 0, -1, True, "1.5"):
            with self.subTest(value=value):
                with self.assertRaises(ValidationError):
                    parse_limit(value)

    def test_user_rank(self):
        service = UserRankService()
        self.assertEqual(service.execute(self.top.pk), 1)
        # 同分同名次
        self.assertEqual(service.execute(self.more_solves.pk), 2)
        self.assertEqual(service.execute(self.late.pk), 2)
        self.assertEqual(service.execute(self.negative.pk), 5)
        self.assertEqual(service.execute(self.author.pk), 0)
        with self.assertRaises(NotFoundError):
            service.execute(999999)


@override_settings(PASSWORD_HASHERS=FAST_HASHERS)
class ScoreboardAPITestCase(APITestCase):
    def setUp(self) -> None:
        self.alice = make_player("alice", score=50, joined_offset=1)
        self.bob = make_player("bob", score=80, joined_offset=2)
        self.admin = make_player("admin", score=1000, is_staff=True)

    def test_leaderboard_is_public(self):
        resp = self.client.get("/api/scoreboard/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["code"], 0)
        items = resp.data["data"]["items"]
        self.assertEqual([item["username"] for item in items], ["bob", "alice"])
        self.assertEqual(items[0]["rank"], 1)

    def test_leaderboard_invalid_limit(self):
        resp = self.client.get("/api/scoreboard/", {"limit": "zero"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["code"], 40002)

    def test_user_rank_endpoint(self):
        resp = self.client.get(f"/api/scoreboard/users/{self.alice.pk}/rank/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["data"], {"user_id": self.alice.pk, "rank": 2})

        resp = self.client.get(f"/api/scoreboard/users/{self.admin.pk}/rank/")
        self.assertEqual(resp.data["data"]["rank"], 0)

        resp = self.client.get("/api/scoreboard/users/999999/rank/")
        self.assertEqual(resp.status_code, 404)
