"""
Rate Limiting Tests - DSP

Config parsing, in-process counters, guard rule resolution and the middleware.
All tests use MemoryQuotaStore with a fake clock or a mocked Redis client;
a Redis server is not required.

Author: DSP Development Team
Date: 2025-09-03
"""

import json
from unittest import mock

import redis
from django.contrib.auth.models import User
from django.core.cache import caches
from django.core.cache.backends.locmem import LocMemCache
from django.http import HttpResponse
from django.test import RequestFactory, SimpleTestCase, TestCase, override_settings
from rest_framework_simplejwt.tokens import AccessToken

from .config import UNLIMITED, Quota, RateLimitConfig, parse_role_quotas, parse_route_quotas
from .guard import IngressGuard, LimiterKey
from .identity import ANONYMOUS_ROLE, DEFAULT_USER_ROLE, peek_role, quota_key
from .middleware import TOO_MANY_REQUESTS_MESSAGE, RateLimitMiddleware
from .store import MemoryQuotaStore, RedisQuotaStore, build_quota_store


class FakeClock:
    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_guard(clock=None, **values):
    clock = clock or FakeClock()
    config = RateLimitConfig.from_values(**values)
    return IngressGuard(config, store=MemoryQuotaStore(clock=clock), clock=clock), clock


class ConfigParsingTests(SimpleTestCase):
    def test_defaults(self):
        config = RateLimitConfig.from_values()
        self.assertEqual(config.default, Quota(points=100, duration=60))
        self.assertEqual(config.user_key_strategy, "auth-only")
        self.assertIsNone(config.redis_url)

    def test_routes(self):
        routes = parse_route_quotas("/api/auth/login:10/60; /api/auth/register:5/30", Quota())
        self.assertEqual(routes["/api/auth/login"], Quota(points=10, duration=60))
        self.assertEqual(routes["/api/auth/register"], Quota(points=5, duration=30))

    def test_roles_with_unlimited(self):
        roles = parse_role_quotas("free:50/60;pro:1000/60;admin:unlimited", Quota())
        self.assertEqual(roles["free"], Quota(points=50, duration=60))
        self.assertIs(roles["admin"], UNLIMITED)

    def test_missing_numbers_fall_back_to_default(self):
        roles = parse_role_quotas("free:abc/;pro:20", Quota(points=7, duration=9))
        self.assertEqual(roles["free"], Quota(points=7, duration=9))
        self.assertEqual(roles["pro"], Quota(points=20, duration=9))

    def test_malformed_entries_skipped(self):
        self.assertEqual(parse_route_quotas("nocolon;:5/5", Quota()), {})

    def test_unknown_strategy_falls_back(self):
        config = RateLimitConfig.from_values(user_key_strategy="sometimes")
        self.assertEqual(config.user_key_strategy, "auth-only")

    def test_exempt_paths_accept_list(self):
        config = RateLimitConfig.from_values(exempt=["/health", " /static "])
        self.assertEqual(config.exempt_paths, ("/health", "/static"))

    @override_settings(RATE_LIMIT_POINTS="25", RATE_LIMIT_DURATION="0", REDIS_URL=None)
    def test_from_settings(self):
        config = RateLimitConfig.from_settings()
        self.assertEqual(config.default, Quota(points=25, duration=60))


class MemoryStoreTests(SimpleTestCase):
    def test_window_counts_and_expires(self):
        clock = FakeClock()
        store = MemoryQuotaStore(clock=clock)

        self.assertEqual(store.hit("k", 60_000).count, 1)
        clock.advance(10)
        hit = store.hit("k", 60_000)
        self.assertEqual(hit.count, 2)
        self.assertEqual(hit.ms_before_next, 50_000)

        clock.advance(50)
        self.assertEqual(store.hit("k", 60_000).count, 1)

    def test_keys_are_independent(self):
        store = MemoryQuotaStore(clock=FakeClock())
        store.hit("a", 1000)
        self.assertEqual(store.hit("b", 1000).count, 1)

    def test_expired_windows_leave_the_cache(self):
        clock = FakeClock()
        cache = LocMemCache("rate-limit-cull-test", {"OPTIONS": {"MAX_ENTRIES": 50}})
        guard = IngressGuard(
            RateLimitConfig.from_values(points=5, duration=1),
            store=MemoryQuotaStore(clock=clock, cache=cache),
            clock=clock,
        )
        factory = RequestFactory()
        for i in range(5000):
            clock.advance(2)
            request = factory.get("/api/elearning/payments/", REMOTE_ADDR=f"10.0.{i // 256}.{i % 256}")
            self.assertTrue(guard.check(request).allowed)

        held = sum(
            1
            for i in range(5000)
            for k in guard.store.cache_keys(f"rl:default:ip:10.0.{i // 256}.{i % 256}")
            if cache.get(k) is not None
        )
        self.assertLessEqual(held, 50)

    def test_reset_clears_window(self):
        store = MemoryQuotaStore(clock=FakeClock())
        store.hit("a", 60_000)
        store.reset("a")
        self.assertEqual(store.hit("a", 60_000).count, 1)

    def test_uses_rate_limit_cache_alias(self):
        store = MemoryQuotaStore(clock=FakeClock())
        store.hit("a", 60_000)
        count_key, _expires_key = store.cache_keys("a")
        self.assertEqual(caches["rate_limit"].get(count_key), 1)

    def test_without_redis_url_uses_memory(self):
        self.assertIsInstance(build_quota_store(None), MemoryQuotaStore)


class IngressGuardTests(SimpleTestCase):
    def setUp(self):
        self.factory = RequestFactory()

    def test_101st_request_in_window_is_rejected(self):
        guard, _clock = make_guard(points=100, duration=60)
        for _ in range(100):
            decision = guard.check(self.factory.get("/api/elearning/payments/"))
            self.assertTrue(decision.allowed)
        self.assertEqual(decision.remaining, 0)

        decision = guard.check(self.factory.get("/api/elearning/payments/"))
        self.assertFalse(decision.allowed)
        headers = decision.headers()
        self.assertEqual(headers["X-RateLimit-Remaining"], "0")
        self.assertEqual(headers["X-RateLimit-Limit"], "100")
        self.assertGreaterEqual(int(headers["Retry-After"]), 1)

    def test_window_replenishes(self):
        guard, clock = make_guard(points=2, duration=60)
        for _ in range(3):
            decision = guard.check(self.factory.get("/"))
        self.assertFalse(decision.allowed)
        clock.advance(60)
        self.assertTrue(guard.check(self.factory.get("/")).allowed)

    def test_retry_after_is_at_least_one_second(self):
        guard, clock = make_guard(points=1, duration=1)
        guard.check(self.factory.get("/"))
        clock.advance(0.9995)
        decision = guard.check(self.factory.get("/"))
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.retry_after, 1)

    def test_exempt_path_consumes_nothing(self):
        guard, _clock = make_guard(points=1, exempt="/health,/static")
        for _ in range(5):
            self.assertIsNone(guard.check(self.factory.get("/health/live")))
        self.assertTrue(guard.check(self.factory.get("/api/")).allowed)

    def test_longest_route_prefix_wins(self):
        guard, _clock = make_guard(routes="/api:50/60;/api/elearning/token:3/60")
        decision = guard.check(self.factory.post("/api/elearning/token/"))
        self.assertEqual(decision.limit, 3)
        decision = guard.check(self.factory.get("/api/elearning/payments/"))
        self.assertEqual(decision.limit, 50)

    def test_route_and_default_counters_are_separate(self):
        guard, _clock = make_guard(points=1, routes="/login:1/60")
        self.assertTrue(guard.check(self.factory.post("/login")).allowed)
        self.assertTrue(guard.check(self.factory.get("/other")).allowed)
        self.assertFalse(guard.check(self.factory.post("/login")).allowed)

    def test_anonymous_callers_are_keyed_by_address(self):
        guard, _clock = make_guard(points=1)
        first = self.factory.get("/", REMOTE_ADDR="10.0.0.1")
        second = self.factory.get("/", REMOTE_ADDR="10.0.0.2")
        self.assertTrue(guard.check(first).allowed)
        self.assertTrue(guard.check(second).allowed)
        self.assertFalse(guard.check(self.factory.get("/", REMOTE_ADDR="10.0.0.1")).allowed)

    def test_limiters_are_cached_and_evictable(self):
        guard, _clock = make_guard()
        guard.check(self.factory.get("/"))
        key = LimiterKey("default")
        limiter = guard.limiter_for(key, guard.config.default)
        self.assertIs(guard.limiter_for(key, guard.config.default), limiter)
        guard.evict(key)
        self.assertIsNot(guard.limiter_for(key, guard.config.default), limiter)

    def test_unlimited_role_reports_unlimited(self):
        guard, _clock = make_guard(points=1, roles="ip:unlimited")
        for _ in range(5):
            decision = guard.check(self.factory.get("/"))
            self.assertTrue(decision.allowed)
        self.assertEqual(
            decision.headers(),
            {"X-RateLimit-Limit": "unlimited", "X-RateLimit-Remaining": "unlimited"},
        )


class IdentityTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.user = User.objects.create_user(username="learner", password="pw-123456")
        cls.user.profile.role = "instructor"
        cls.user.profile.save()

    def setUp(self):
        self.factory = RequestFactory()

    def bearer(self, **claims):
        token = AccessToken.for_user(self.user)
        for name, value in claims.items():
            token[name] = value
        return {"HTTP_AUTHORIZATION": f"Bearer {token}"}

    def test_verified_token_gives_user_key_and_role(self):
        guard, _clock = make_guard(points=1)
        request = self.factory.get("/", **self.bearer(role="instructor"))
        self.assertTrue(guard.check(request).allowed)
        # Same user from another address shares the counter.
        request = self.factory.get("/", REMOTE_ADDR="10.9.9.9", **self.bearer(role="instructor"))
        self.assertFalse(guard.check(request).allowed)

    def test_role_quota_applies_to_token_role(self):
        guard, _clock = make_guard(points=1, roles="instructor:5/60")
        request = self.factory.get("/", **self.bearer(role="instructor"))
        self.assertEqual(guard.check(request).limit, 5)

    def test_tier_claim_is_accepted(self):
        token = AccessToken.for_user(self.user)
        token["tier"] = "pro"
        self.assertEqual(peek_role(str(token)), "pro")

    def test_garbage_token_falls_back_to_address(self):
        guard, _clock = make_guard(points=1, roles="user:unlimited")
        request = self.factory.get("/", HTTP_AUTHORIZATION="Bearer not-a-jwt")
        decision = guard.check(request)
        self.assertFalse(decision.unlimited)
        self.assertIsNone(peek_role("not-a-jwt"))

    def test_session_user_role_comes_from_profile(self):
        request = self.factory.get("/")
        request.user = self.user
        guard, _clock = make_guard(points=1, roles="instructor:unlimited")
        self.assertTrue(guard.check(request).unlimited)

    def test_quota_key_strategies(self):
        request = self.factory.get("/", REMOTE_ADDR="10.1.1.1")
        self.assertEqual(quota_key(request, "7", "student", "auth-only"), "user:7:student")
        self.assertEqual(quota_key(request, "7", "student", "never"), "ip:10.1.1.1")
        self.assertEqual(quota_key(request, None, ANONYMOUS_ROLE, "always"), "ip:10.1.1.1")

    def test_forwarded_for_used_without_remote_addr(self):
        request = self.factory.get("/", HTTP_X_FORWARDED_FOR="203.0.113.5, 10.0.0.1")
        del request.META["REMOTE_ADDR"]
        self.assertEqual(quota_key(request, None, ANONYMOUS_ROLE, "auth-only"), "ip:203.0.113.5")

    def test_default_role_without_claim(self):
        token = AccessToken.for_user(self.user)
        self.assertIsNone(peek_role(str(token)))
        self.assertEqual(DEFAULT_USER_ROLE, "user")


class RateLimitMiddlewareTests(SimpleTestCase):
    def setUp(self):
        self.factory = RequestFactory()
        guard, _clock = make_guard(points=2, duration=60, exempt="/static")
        self.middleware = RateLimitMiddleware(lambda request: HttpResponse("ok"), guard=guard)

    def test_allowed_response_carries_headers(self):
        response = self.middleware(self.factory.get("/api/"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["X-RateLimit-Limit"], "2")
        self.assertEqual(response["X-RateLimit-Remaining"], "1")
        self.assertIn("X-RateLimit-Reset", response)

    def test_rejection_is_429_json(self):
        self.middleware(self.factory.get("/api/"))
        self.middleware(self.factory.get("/api/"))
        response = self.middleware(self.factory.get("/api/"))
        self.assertEqual(response.status_code, 429)
        self.assertEqual(json.loads(response.content), {"detail": TOO_MANY_REQUESTS_MESSAGE})
        self.assertEqual(response["X-RateLimit-Remaining"], "0")
        self.assertGreaterEqual(int(response["Retry-After"]), 1)

    def test_exempt_path_has_no_headers(self):
        response = self.middleware(self.factory.get("/static/app.css"))
        self.assertEqual(response.status_code, 200)
        self.assertNotIn("X-RateLimit-Limit", response)

    def test_redis_outage_after_startup_propagates(self):
        client = mock.Mock()
        client.register_script.return_value.side_effect = redis.exceptions.ConnectionError("down")
        guard = IngressGuard(RateLimitConfig.from_values(), store=RedisQuotaStore(client))
        middleware = RateLimitMiddleware(lambda request: HttpResponse("ok"), guard=guard)

        with self.assertRaises(redis.exceptions.ConnectionError):
            middleware(self.factory.get("/api/"))
