from __future__ import annotations

import threading
from datetime import timedelta
from unittest import mock

from django.core.cache import cache
from django.db import IntegrityError, OperationalError, connection
from django.test import TestCase, TransactionTestCase, override_settings
from django.utils import timezone
from rest_framework.test import APITestCase

from apps.accounts.models import User
from apps.challenges.flags import FlagVerifier
from apps.challenges.models import Challenge, ChallengeSolve
from apps.challenges.repo import ChallengeSolveRepo
from apps.common.exceptions import (
    CacheUnavailableError,
    FlagVerificationError,
    StoreError,
    SubmissionRateLimitError,
    ValidationError,
)
from apps.common.tests_utils import AuthenticatedAPIMixin
from apps.common.utils.redis_keys import submission_lock_key
from apps.common.utils.time import to_timestamp

from .models import Submission
from .results import AlreadySolved, Incorrect, NotFound, NotPublished, Solved
from .schemas import SubmissionCreateSchema
from .services import SubmissionService
from .throttle import (
    CacheSubmissionThrottle,
    RedisSubmissionThrottle,
    SubmissionLogThrottle,
    get_submission_throttle,
)

# 测试用例：判题流程、并发兜底、频率窗口与提交接口

FAST_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]


def create_challenge(author: User, *, flag: str = "flag{yes}", points: int = 100, published: bool = True) -> Challenge:
    return Challenge.objects.create(
        title="scenario",
        slug=f"scenario-{Challenge.objects.count()}",
        category="misc",
        points=points,
        flag_hash=FlagVerifier().hash_flag(flag),
        is_published=published,
        author=author,
    )


def flag(value: str) -> SubmissionCreateSchema:
    return SubmissionCreateSchema.from_dict({"flag": value})


class RecordingThrottle(CacheSubmissionThrottle):
    """记录 release 调用次数，用于确认存储失败会退还名额"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.released = 0

    def release(self, user_id, challenge_id, now):
        self.released += 1
        super().release(user_id, challenge_id, now)


class StalePrecheckSolveRepo(ChallengeSolveRepo):
    """首次预检查返回“未解出”，模拟并发提交在预检查之后抢先写入解题记录"""

    def __init__(self):
        self.calls = 0

    def has_solved(self, user_id, challenge_id):
        self.calls += 1
        if self.calls == 1:
            return False
        return super().has_solved(user_id, challenge_id)


class FailingSolveRepo(ChallengeSolveRepo):
    def __init__(self, exc: Exception):
        self.exc = exc

    def create_solve(self, **kwargs):
        raise self.exc


@override_settings(PASSWORD_HASHERS=FAST_HASHERS)
class SubmissionServiceTests(TestCase):
    def setUp(self) -> None:
        cache.clear()
        self.author = User.objects.create_user(username="author", email="author@example.com", password="x")
        self.player = User.objects.create_user(username="player", email="player@example.com", password="x")
        self.throttle = RecordingThrottle(rate=100, window_seconds=60)
        self.service = SubmissionService(throttle=self.throttle)

    def submit(self, challenge_id, value, **kwargs):
        return self.service.execute(self.player, challenge_id, flag(value), **kwargs)

    def test_end_to_end_scenario(self):
        """未发布 → 发布 → 错误 → 正确 → 重复"""
        challenge = create_challenge(self.author, points=100, published=False)

        self.assertEqual(self.submit(challenge.id, "flag{yes}"), NotPublished())
        self.assertFalse(Submission.objects.exists())

        Challenge.objects.filter(pk=challenge.pk).update(is_published=True)

        self.assertEqual(self.submit(challenge.id, "flag{no}"), Incorrect())
        self.player.refresh_from_db()
        self.assertEqual(self.player.score, 0)

        self.assertEqual(self.submit(challenge.id, "flag{yes}"), Solved(points_awarded=100, score=100))
        self.player.refresh_from_db()
        self.assertEqual(self.player.score, 100)

        self.assertEqual(self.submit(challenge.id, "flag{yes}"), AlreadySolved())
        self.player.refresh_from_db()
        self.assertEqual(self.player.score, 100)

        statuses = list(Submission.objects.order_by("id").values_list("status", flat=True))
        self.assertEqual(
            statuses,
            [Submission.Status.REJECTED, Submission.Status.ACCEPTED, Submission.Status.DUPLICATE],
        )
        self.assertEqual(ChallengeSolve.objects.filter(user=self.player).count(), 1)
        accepted = Submission.objects.get(status=Submission.Status.ACCEPTED)
        self.assertEqual(accepted.awarded_points, 100)
        self.assertIsNotNone(accepted.solve_id)

    def test_unknown_challenge(self):
        self.assertEqual(self.submit(999999, "flag{yes}"), NotFound())
        self.assertFalse(Submission.objects.exists())

    def test_already_solved_skips_verifier(self):
        challenge = create_challenge(self.author)
        ChallengeSolve.objects.create(user=self.player, challenge=challenge, awarded_points=100)
        with mock.patch.object(FlagVerifier, "verify") as verify:
            self.assertEqual(self.submit(challenge.id, "anything"), AlreadySolved())
            verify.assert_not_called()

    def test_whitespace_around_flag_is_accepted(self):
        challenge = create_challenge(self.author)
        self.assertIsInstance(self.submit(challenge.id, "  flag{yes}\n"), Solved)

    def test_provenance_is_recorded(self):
        challenge = create_challenge(self.author)
        self.submit(challenge.id, "flag{no}", ip_address="10.0.0.8", user_agent="curl/8.0")
        submission = Submission.objects.get()
        self.assertEqual(submission.ip_address, "10.0.0.8")
        self.assertEqual(submission.user_agent, "curl/8.0")
        self.assertEqual(submission.flag_submitted, "flag{no}")

    def test_race_backstop_returns_already_solved(self):
        """预检查漏判时唯一约束兜底：不重复加分，返回 AlreadySolved"""
        challenge = create_challenge(self.author)
        ChallengeSolve.objects.create(user=self.player, challenge=challenge, awarded_points=100)
        User.objects.filter(pk=self.player.pk).update(score=100)

        service = SubmissionService(solve_repo=StalePrecheckSolveRepo(), throttle=self.throttle)
        outcome = service.execute(self.player, challenge.id, flag("flag{yes}"))

        self.assertEqual(outcome, AlreadySolved())
        self.player.refresh_from_db()
        self.assertEqual(self.player.score, 100)
        self.assertEqual(ChallengeSolve.objects.filter(user=self.player).count(), 1)
        self.assertEqual(
            list(Submission.objects.values_list("status", flat=True)),
            [Submission.Status.DUPLICATE],
        )

    def test_unexplained_integrity_error_is_store_error(self):
        challenge = create_challenge(self.author)
        service = SubmissionService(solve_repo=FailingSolveRepo(IntegrityError("boom")), throttle=self.throttle)
        with self.assertRaises(StoreError):
            service.execute(self.player, challenge.id, flag("flag{yes}"))
        self.player.refresh_from_db()
        self.assertEqual(self.player.score, 0)
        self.assertEqual(self.throttle.released, 1)
        self.assertFalse(Submission.objects.filter(status=Submission.Status.ACCEPTED).exists())

    def test_database_timeout_is_store_error_and_not_counted(self):
        challenge = create_challenge(self.author)
        service = SubmissionService(
            solve_repo=FailingSolveRepo(OperationalError("database is locked")),
            throttle=self.throttle,
        )
        with self.assertRaises(StoreError):
            service.execute(self.player, challenge.id, flag("flag{yes}"))
        self.assertEqual(self.throttle.released, 1)
        self.player.refresh_from_db()
        self.assertEqual(self.player.score, 0)

    def test_malformed_hash_is_never_correct(self):
        challenge = create_challenge(self.author)
        Challenge.objects.filter(pk=challenge.pk).update(flag_hash="corrupted")
        with self.assertRaises(FlagVerificationError):
            self.submit(challenge.id, "flag{yes}")
        self.player.refresh_from_db()
        self.assertEqual(self.player.score, 0)
        self.assertFalse(ChallengeSolve.objects.exists())
        self.assertEqual(Submission.objects.get().status, Submission.Status.REJECTED)
        # 校验器异常不是存储错误，名额不退还
        self.assertEqual(self.throttle.released, 0)

    def test_admin_can_solve(self):
        admin = User.objects.create_superuser(username="root", email="root@example.com", password="x")
        challenge = create_challenge(self.author, points=70)
        outcome = self.service.execute(admin, challenge.id, flag("flag{yes}"))
        self.assertEqual(outcome, Solved(points_awarded=70, score=70))

    def test_schema_validation(self):
        for value in ("", "   ", None, "x" * 1025):
            with self.subTest(value=value):
                with self.assertRaises(ValidationError):
                    SubmissionCreateSchema.from_dict({"flag": value})


@override_settings(PASSWORD_HASHERS=FAST_HASHERS)
class SubmissionThrottleTests(TestCase):
    def setUp(self) -> None:
        cache.clear()
        self.author = User.objects.create_user(username="author", email="author@example.com", password="x")
        self.player = User.objects.create_user(username="player", email="player@example.com", password="x")
        self.challenge = create_challenge(self.author)
        self.t0 = timezone.now().replace(microsecond=0)

    def at(self, seconds: float):
        return self.t0 + timedelta(seconds=seconds)

    def test_window_rejects_then_recovers(self):
        service = SubmissionService(throttle=CacheSubmissionThrottle(rate=3, window_seconds=60))
        for offset in (0, 1, 2):
            service.execute(self.player, self.challenge.id, flag("flag{no}"), now=self.at(offset))

        with self.assertRaises(SubmissionRateLimitError) as ctx:
            service.execute(self.player, self.challenge.id, flag("flag{yes}"), now=self.at(10))
        retry_after = ctx.exception.extra["retry_after"]
        self.assertEqual(retry_after, 50)
        self.assertTrue(1 <= retry_after <= 60)
        # 被拒绝的提交不落库、不判题
        self.assertEqual(Submission.objects.count(), 3)
        self.assertFalse(ChallengeSolve.objects.exists())

        outcome = service.execute(self.player, self.challenge.id, flag("flag{yes}"), now=self.at(60))
        self.assertIsInstance(outcome, Solved)

    def test_retry_after_is_clamped(self):
        throttle = CacheSubmissionThrottle(rate=1, window_seconds=60)
        now = to_timestamp(self.t0)
        self.assertTrue(throttle.acquire(self.player.pk, self.challenge.id, now).allowed)
        decision = throttle.acquire(self.player.pk, self.challenge.id, now + 59.9)
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.retry_after, 1)
        decision = throttle.acquire(self.player.pk, self.challenge.id, now)
        self.assertEqual(decision.retry_after, 60)

    def test_scope_challenge_and_user(self):
        now = to_timestamp(self.t0)
        per_challenge = CacheSubmissionThrottle(rate=1, window_seconds=60, scope="challenge")
        self.assertTrue(per_challenge.acquire(self.player.pk, 1, now).allowed)
        self.assertFalse(per_challenge.acquire(self.player.pk, 1, now).allowed)
        self.assertTrue(per_challenge.acquire(self.player.pk, 2, now).allowed)

        cache.clear()
        per_user = CacheSubmissionThrottle(rate=1, window_seconds=60, scope="user")
        self.assertTrue(per_user.acquire(self.player.pk, 1, now).allowed)
        self.assertFalse(per_user.acquire(self.player.pk, 2, now).allowed)

    def test_release_returns_slot(self):
        throttle = CacheSubmissionThrottle(rate=1, window_seconds=60)
        now = to_timestamp(self.t0)
        self.assertTrue(throttle.acquire(self.player.pk, self.challenge.id, now).allowed)
        throttle.release(self.player.pk, self.challenge.id, now)
        self.assertTrue(throttle.acquire(self.player.pk, self.challenge.id, now + 1).allowed)

    def test_busy_window_lock_rejects(self):
        throttle = CacheSubmissionThrottle(rate=5, window_seconds=60)
        cache.add(submission_lock_key(self.player.pk, self.challenge.id), "other", timeout=30)
        with mock.patch("apps.submissions.throttle.LOCK_RETRIES", 2), mock.patch(
            "apps.submissions.throttle.LOCK_RETRY_INTERVAL", 0
        ):
            with self.assertRaises(CacheUnavailableError):
                throttle.acquire(self.player.pk, self.challenge.id, to_timestamp(self.t0))
        # 他人持有的锁不会被误删
        self.assertEqual(cache.get(submission_lock_key(self.player.pk, self.challenge.id)), "other")

    def test_store_failure_does_not_consume_window(self):
        throttle = CacheSubmissionThrottle(rate=1, window_seconds=60)
        failing = SubmissionService(
            solve_repo=FailingSolveRepo(OperationalError("timeout")),
            throttle=throttle,
        )
        with self.assertRaises(StoreError):
            failing.execute(self.player, self.challenge.id, flag("flag{yes}"), now=self.at(0))
        outcome = SubmissionService(throttle=throttle).execute(
            self.player, self.challenge.id, flag("flag{yes}"), now=self.at(1)
        )
        self.assertIsInstance(outcome, Solved)

    def test_submission_log_backend(self):
        service = SubmissionService(throttle=SubmissionLogThrottle(rate=2, window_seconds=30))
        service.execute(self.player, self.challenge.id, flag("flag{no}"), now=self.at(0))
        service.execute(self.player, self.challenge.id, flag("flag{no}"), now=self.at(5))
        with self.assertRaises(SubmissionRateLimitError) as ctx:
            service.execute(self.player, self.challenge.id, flag("flag{no}"), now=self.at(6))
        self.assertEqual(ctx.exception.extra["retry_after"], 24)
        self.assertIsInstance(
            service.execute(self.player, self.challenge.id, flag("flag{no}"), now=self.at(31)),
            Incorrect,
        )

    def test_submission_log_backend_skips_unpublished(self):
        draft = create_challenge(self.author, published=False)
        service = SubmissionService(throttle=SubmissionLogThrottle(rate=1, window_seconds=60))
        # 未发布的题目不落提交记录，也就不计入按提交记录计数的窗口
        for offset in (0, 1, 2):
            outcome = service.execute(self.player, draft.id, flag("flag{yes}"), now=self.at(offset))
            self.assertIsInstance(outcome, NotPublished)
        self.assertFalse(Submission.objects.exists())

    def test_cache_backend_counts_unpublished(self):
        draft = create_challenge(self.author, published=False)
        service = SubmissionService(throttle=CacheSubmissionThrottle(rate=1, window_seconds=60))
        self.assertIsInstance(service.execute(self.player, draft.id, flag("x"), now=self.at(0)), NotPublished)
        with self.assertRaises(SubmissionRateLimitError):
            service.execute(self.player, draft.id, flag("x"), now=self.at(1))

    def test_redis_backend_counts_and_fails_open(self):
        throttle = RedisSubmissionThrottle(rate=2, window_seconds=60)
        now = 1_000_020.0
        with mock.patch("apps.submissions.throttle.redis_client.incr", return_value=3), mock.patch(
            "apps.submissions.throttle.redis_client.decr"
        ) as decr:
            decision = throttle.acquire(self.player.pk, self.challenge.id, now)
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.retry_after, 60)
        # 超限请求立即退回计数
        decr.assert_called_once()

        with mock.patch("apps.submissions.throttle.redis_client.incr", return_value=2):
            self.assertTrue(throttle.acquire(self.player.pk, self.challenge.id, now).allowed)

        with mock.patch(
            "apps.submissions.throttle.redis_client.incr",
            side_effect=CacheUnavailableError(),
        ):
            self.assertTrue(throttle.acquire(self.player.pk, self.challenge.id, now).allowed)

        with mock.patch("apps.submissions.throttle.redis_client.decr") as decr:
            throttle.release(self.player.pk, self.challenge.id, now)
        decr.assert_called_once()

        with mock.patch(
            "apps.submissions.throttle.redis_client.decr",
            side_effect=CacheUnavailableError(),
        ):
            throttle.release(self.player.pk, self.challenge.id, now)

    @override_settings(
        FLAG_SUBMIT_THROTTLE={
            "BACKEND": "apps.submissions.throttle.SubmissionLogThrottle",
            "RATE": 4,
            "WINDOW_SECONDS": 15,
            "SCOPE": "user",
        }
    )
    def test_backend_from_settings(self):
        throttle = get_submission_throttle()
        self.assertIsInstance(throttle, SubmissionLogThrottle)
        self.assertEqual((throttle.rate, throttle.window_seconds, throttle.scope), (4, 15, "user"))


@override_settings(PASSWORD_HASHERS=FAST_HASHERS)
class ConcurrentSubmissionTests(TransactionTestCase):
    """多线程同时提交正确 Flag：只有一次解题、一次加分"""

    workers = 6

    def setUp(self) -> None:
        cache.clear()
        self.author = User.objects.create_user(username="author", email="author@example.com", password="x")
        self.player = User.objects.create_user(username="player", email="player@example.com", password="x")
        self.challenge = create_challenge(self.author, points=100)

    def test_concurrent_correct_submissions_award_once(self):
        barrier = threading.Barrier(self.workers)
        outcomes: list = []
        errors: list = []
        lock = threading.Lock()

        def worker():
            try:
                service = SubmissionService(throttle=CacheSubmissionThrottle(rate=100, window_seconds=60))
                player = User.objects.get(pk=self.player.pk)
                barrier.wait()
                outcome = service.execute(player, self.challenge.id, flag("flag{yes}"))
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
        self.assertEqual(sum(isinstance(o, Solved) for o in outcomes), 1)
        self.assertEqual(sum(isinstance(o, AlreadySolved) for o in outcomes), self.workers - 1)
        self.player.refresh_from_db()
        self.assertEqual(self.player.score, 100)
        self.assertEqual(ChallengeSolve.objects.filter(user=self.player).count(), 1)
        self.assertEqual(Submission.objects.filter(status=Submission.Status.ACCEPTED).count(), 1)


@override_settings(PASSWORD_HASHERS=FAST_HASHERS)
class ConcurrentThrottleTests(TransactionTestCase):
    """突发并发提交：窗口内放行数不超过 RATE"""

    workers = 12
    rate = 3

    def setUp(self) -> None:
        cache.clear()
        self.author = User.objects.create_user(username="author", email="author@example.com", password="x")
        self.player = User.objects.create_user(username="player", email="player@example.com", password="x")
        self.challenge = create_challenge(self.author)

    def test_burst_is_capped_at_rate(self):
        throttle = CacheSubmissionThrottle(rate=self.rate, window_seconds=60)
        barrier = threading.Barrier(self.workers)
        outcomes: list = []
        limited: list = []
        errors: list = []
        lock = threading.Lock()

        def worker():
            try:
                service = SubmissionService(throttle=throttle)
                player = User.objects.get(pk=self.player.pk)
                barrier.wait()
                try:
                    outcome = service.execute(player, self.challenge.id, flag("flag{no}"))
                except SubmissionRateLimitError as exc:
                    with lock:
                        limited.append(exc)
                else:
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
        self.assertEqual(len(outcomes), self.rate)
        self.assertTrue(all(isinstance(o, Incorrect) for o in outcomes))
        self.assertEqual(len(limited), self.workers - self.rate)
        self.assertEqual(Submission.objects.filter(user=self.player).count(), self.rate)


@override_settings(PASSWORD_HASHERS=FAST_HASHERS)
class SubmissionAPITestCase(AuthenticatedAPIMixin, APITestCase):
    def setUp(self) -> None:
        cache.clear()
        self.author = self.make_user("author")
        self.player = self.make_user("player")
        self.admin = self.make_user("auditor", is_staff=True)
        self.challenge = create_challenge(self.author, points=100)
        self.url = f"/api/challenges/{self.challenge.id}/submit/"

    def test_submit_outcomes(self):
        client = self.auth_client("player")

        resp = client.post(self.url, {"flag": "flag{no}"}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["data"], {"correct": False, "status": "incorrect"})

        resp = client.post(self.url, {"flag": "flag{yes}"}, format="json")
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data["code"], 0)
        self.assertEqual(resp.data["data"]["points_awarded"], 100)
        self.assertEqual(resp.data["data"]["score"], 100)
        self.assertTrue(resp.data["data"]["correct"])

        resp = client.post(self.url, {"flag": "flag{yes}"}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["data"]["status"], "already_solved")
        self.assertEqual(resp.data["data"]["points_awarded"], 0)

    def test_unpublished_and_missing(self):
        draft = create_challenge(self.author, published=False)
        client = self.auth_client("player")
        resp = client.post(f"/api/challenges/{draft.id}/submit/", {"flag": "flag{yes}"}, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["code"], 48001)

        resp = client.post("/api/challenges/999999/submit/", {"flag": "flag{yes}"}, format="json")
        self.assertEqual(resp.status_code, 404)

    def test_requires_login_and_flag(self):
        resp = self.client.post(self.url, {"flag": "flag{yes}"}, format="json")
        self.assertEqual(resp.status_code, 401)

        client = self.auth_client("player")
        resp = client.post(self.url, {"flag": "   "}, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["code"], 40002)

    @override_settings(
        FLAG_SUBMIT_THROTTLE={
            "BACKEND": "apps.submissions.throttle.CacheSubmissionThrottle",
            "RATE": 2,
            "WINDOW_SECONDS": 60,
            "SCOPE": "challenge",
        }
    )
    def test_rate_limit_returns_retry_after(self):
        client = self.auth_client("player")
        for _ in range(2):
            client.post(self.url, {"flag": "flag{no}"}, format="json")
        resp = client.post(self.url, {"flag": "flag{yes}"}, format="json")
        self.assertEqual(resp.status_code, 429)
        self.assertEqual(resp.data["code"], 48102)
        retry_after = resp.data["extra"]["retry_after"]
        self.assertTrue(1 <= retry_after <= 60)
        self.assertEqual(resp["Retry-After"], str(retry_after))
        self.assertEqual(Submission.objects.count(), 2)

    def test_submission_list_scoping(self):
        self.auth_client("player").post(self.url, {"flag": "flag{no}"}, format="json")
        self.auth_client("author").post(self.url, {"flag": "flag{no}"}, format="json")

        resp = self.auth_client("player").get("/api/submissions/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["extra"]["total"], 1)
        self.assertNotIn("flag_submitted", resp.data["data"][0])

        resp = self.auth_client("player").get("/api/submissions/", {"user_id": self.author.pk})
        self.assertEqual(resp.status_code, 403)

        resp = self.auth_client("auditor").get("/api/submissions/", {"user_id": self.author.pk})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["extra"]["total"], 1)
        self.assertEqual(resp.data["data"][0]["flag_submitted"], "flag{no}")
