from __future__ import annotations

import os
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from inventory.deps import get_storage
from inventory.errors import RateLimited
from inventory.main import app
from inventory.memory_storage import MemoryStorage
from inventory.rate_limit import FixedWindowRateLimiter, build_rate_limiters
from inventory.settings import Settings, get_settings


class _FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FixedWindowRateLimiterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = _FakeClock()
        self.limiter = FixedWindowRateLimiter(
            name="test",
            limit=3,
            window_seconds=60,
            message="Too many.",
            clock=self.clock,
        )

    def test_hits_within_limit_report_remaining(self) -> None:
        states = [self.limiter.hit("1.2.3.4") for _ in range(3)]

        self.assertEqual([state.remaining for state in states], [2, 1, 0])
        self.assertFalse(any(state.exceeded for state in states))

    def test_hit_past_limit_is_exceeded_with_retry_after(self) -> None:
        for _ in range(3):
            self.limiter.hit("1.2.3.4")
        self.clock.advance(15)

        state = self.limiter.hit("1.2.3.4")

        self.assertTrue(state.exceeded)
        headers = state.headers()
        self.assertEqual(headers["Retry-After"], "45")
        self.assertEqual(headers["RateLimit-Remaining"], "0")
        self.assertEqual(headers["RateLimit-Policy"], "3;w=60")

    def test_window_resets_after_expiry(self) -> None:
        for _ in range(4):
            self.limiter.hit("1.2.3.4")
        self.clock.advance(60)

        state = self.limiter.hit("1.2.3.4")

        self.assertFalse(state.exceeded)
        self.assertEqual(state.remaining, 2)

    def test_keys_are_counted_independently(self) -> None:
        for _ in range(3):
            self.limiter.hit("1.2.3.4")

        self.assertFalse(self.limiter.hit("5.6.7.8").exceeded)
        self.assertTrue(self.limiter.hit("1.2.3.4").exceeded)

    def test_peek_does_not_consume(self) -> None:
        for _ in range(5):
            self.limiter.peek("1.2.3.4")

        self.assertEqual(self.limiter.hit("1.2.3.4").remaining, 2)

    def test_ensure_allowed_and_consume_raise_rate_limited(self) -> None:
        for _ in range(3):
            self.limiter.consume("1.2.3.4")

        with self.assertRaises(RateLimited) as ctx:
            self.limiter.ensure_allowed("1.2.3.4")
        self.assertEqual(ctx.exception.status_code, 429)
        self.assertIn("Retry-After", ctx.exception.headers)

        with self.assertRaises(RateLimited):
            self.limiter.consume("1.2.3.4")

    def test_expired_windows_are_dropped(self) -> None:
        for index in range(1000):
            self.limiter.hit(f"10.0.{index // 256}.{index % 256}")
        self.assertEqual(self.limiter.tracked_keys, 1000)

        self.clock.advance(60)
        self.limiter.hit("1.2.3.4")

        self.assertEqual(self.limiter.tracked_keys, 1)

    def test_live_windows_survive_a_sweep(self) -> None:
        self.limiter.hit("1.2.3.4")
        self.clock.advance(30)
        for _ in range(3):
            self.limiter.hit("5.6.7.8")
        self.clock.advance(30)

        self.assertTrue(self.limiter.hit("5.6.7.8").exceeded)
        self.assertEqual(self.limiter.tracked_keys, 1)

    def test_reset_single_key(self) -> None:
        for _ in range(3):
            self.limiter.hit("1.2.3.4")
            self.limiter.hit("5.6.7.8")

        self.limiter.reset("1.2.3.4")

        self.assertFalse(self.limiter.peek("1.2.3.4").exceeded)
        self.assertTrue(self.limiter.peek("5.6.7.8").exceeded)


class _LimiterApiTestCase(unittest.TestCase):
    env: dict[str, str] = {}

    def setUp(self) -> None:
        self._env = patch.dict(os.environ, {"LOGIN_MIN_DURATION_MS": "0", **self.env}, clear=False)
        self._env.start()
        get_settings.cache_clear()
        self._original_limiters = app.state.rate_limiters
        app.state.rate_limiters = build_rate_limiters(Settings(api_rate_limit_max=1000))

        self.storage = MemoryStorage()
        self.user = self.storage.add_user(username="mrossi", email="m.rossi@example.com", password="Secret123!")
        app.dependency_overrides[get_storage] = lambda: self.storage
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        app.state.rate_limiters = self._original_limiters
        self._env.stop()
        get_settings.cache_clear()

    def _login(self, password: str, ip: str = "203.0.113.7"):
        return self.client.post(
            "/api/auth/login",
            json={"email": "m.rossi@example.com", "password": password},
            headers={"X-Forwarded-For": f"10.0.0.1, {ip}"},
        )


class LoginRateLimitTests(_LimiterApiTestCase):
    env = {"APP_ENV": "production", "TRUSTED_PROXY_COUNT": "1"}

    def test_sixth_attempt_is_blocked_even_with_valid_credentials(self) -> None:
        for _ in range(5):
            self.assertEqual(self._login("wrong").status_code, 401)

        response = self._login("Secret123!")

        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json()["code"], "RATE_LIMITED")
        self.assertIn("Too many login attempts", response.json()["error"])
        self.assertIn("Retry-After", response.headers)

    def test_successful_logins_do_not_consume_quota(self) -> None:
        for _ in range(3):
            self.assertEqual(self._login("Secret123!").status_code, 200)
        for _ in range(5):
            self.assertEqual(self._login("wrong").status_code, 401)

        self.assertEqual(self._login("wrong").status_code, 429)

    def test_invalid_payloads_count_as_failures(self) -> None:
        for _ in range(5):
            response = self.client.post(
                "/api/auth/login",
                json={"email": "not-an-email"},
                headers={"X-Forwarded-For": "203.0.113.7"},
            )
            self.assertEqual(response.status_code, 400)

        self.assertEqual(self._login("Secret123!").status_code, 429)

    def test_limit_is_tracked_per_forwarded_ip(self) -> None:
        for _ in range(5):
            self._login("wrong", ip="203.0.113.7")

        self.assertEqual(self._login("wrong", ip="203.0.113.7").status_code, 429)
        self.assertEqual(self._login("Secret123!", ip="198.51.100.2").status_code, 200)

    def test_client_supplied_hops_left_of_the_proxy_are_ignored(self) -> None:
        for index in range(5):
            response = self.client.post(
                "/api/auth/login",
                json={"email": "m.rossi@example.com", "password": "wrong"},
                headers={"X-Forwarded-For": f"10.9.9.{index}, 203.0.113.7"},
            )
            self.assertEqual(response.status_code, 401)

        response = self.client.post(
            "/api/auth/login",
            json={"email": "m.rossi@example.com", "password": "wrong"},
            headers={"X-Forwarded-For": "10.9.9.99, 203.0.113.7"},
        )

        self.assertEqual(response.status_code, 429)


class DirectClientLoginLimitTests(_LimiterApiTestCase):
    env = {"APP_ENV": "production", "TRUSTED_PROXY_COUNT": "0"}

    def test_forwarded_header_is_ignored_without_trusted_proxies(self) -> None:
        statuses = [
            self.client.post(
                "/api/auth/login",
                json={"email": "m.rossi@example.com", "password": "wrong"},
                headers={"X-Forwarded-For": f"10.9.9.{index}"},
            ).status_code
            for index in range(6)
        ]

        self.assertEqual(statuses, [401] * 5 + [429])


class LoginRateLimitBypassTests(_LimiterApiTestCase):
    env = {"APP_ENV": "development"}

    def test_development_mode_skips_login_limiter(self) -> None:
        for _ in range(7):
            self.assertEqual(self._login("wrong").status_code, 401)

        self.assertEqual(self._login("Secret123!").status_code, 200)


class StagingLoginLimiterTests(_LimiterApiTestCase):
    env = {"APP_ENV": "staging"}

    def test_non_development_environments_keep_the_limiter(self) -> None:
        for _ in range(5):
            self._login("wrong")

        self.assertEqual(self._login("wrong").status_code, 429)


class ApiRateLimitMiddlewareTests(unittest.TestCase):
    def setUp(self) -> None:
        self._original_limiters = app.state.rate_limiters
        app.state.rate_limiters = build_rate_limiters(Settings(api_rate_limit_max=3, qr_rate_limit_max=2))
        self.storage = MemoryStorage()
        app.dependency_overrides[get_storage] = lambda: self.storage
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        app.state.rate_limiters = self._original_limiters

    def test_api_responses_carry_rate_limit_headers(self) -> None:
        response = self.client.get("/api/employees")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.headers["RateLimit-Limit"], "3")
        self.assertEqual(response.headers["RateLimit-Remaining"], "2")
        self.assertIn("RateLimit-Reset", response.headers)

    def test_requests_over_the_limit_get_429(self) -> None:
        for _ in range(3):
            self.client.get("/api/employees")

        response = self.client.get("/api/employees")

        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json()["code"], "RATE_LIMITED")
        self.assertIn("Retry-After", response.headers)
        self.assertTrue(response.headers.get("X-Request-Id"))

    def test_health_check_is_exempt(self) -> None:
        for _ in range(5):
            response = self.client.get("/api/health")
            self.assertEqual(response.status_code, 200)
            self.assertNotIn("RateLimit-Limit", response.headers)

    def test_non_api_paths_are_not_limited(self) -> None:
        for _ in range(5):
            self.assertEqual(self.client.get("/health").status_code, 200)

    def test_qr_scan_has_its_own_stricter_limit(self) -> None:
        app.state.rate_limiters.api.limit = 100
        for _ in range(2):
            self.assertEqual(self.client.get("/api/pcs/qr/PC-000001").status_code, 404)

        response = self.client.get("/api/pcs/qr/PC-000001")

        self.assertEqual(response.status_code, 429)
        self.assertIn("QR", response.json()["error"])
        self.assertIn("Retry-After", response.headers)


if __name__ == "__main__":
    unittest.main()
