import unittest
from unittest.mock import patch

from satinalma.security import SimpleRateLimiter
from satinalma.ui_strings import error_message
from tests.helpers.api_case import ApiTestCase


class SimpleRateLimiterTest(unittest.TestCase):
    def test_counts_per_key_within_window(self) -> None:
        limiter = SimpleRateLimiter()
        self.assertEqual([limiter.allow("a", limit=2, window_seconds=60)[0] for _ in range(3)], [True, True, False])
        self.assertTrue(limiter.allow("b", limit=2, window_seconds=60)[0])

        limiter.reset()
        self.assertTrue(limiter.allow("a", limit=2, window_seconds=60)[0])

    def test_stale_windows_are_evicted_when_full(self) -> None:
        limiter = SimpleRateLimiter(max_keys=2)
        with patch("satinalma.security.time.monotonic", side_effect=[0.0, 0.5, 10.0]):
            for key in ("a", "b", "c"):
                limiter.allow(key, limit=5, window_seconds=5)
        self.assertEqual(list(limiter._windows), ["c"])


class SecurityHardeningTest(ApiTestCase):
    config_overrides = {"RATE_LIMIT_ENABLED": True, "RATE_LIMIT_WINDOW_SECONDS": 60, "RATE_LIMIT_MAX_REQUESTS": 300}

    def test_rate_limit_blocks_excessive_api_calls(self) -> None:
        self.app.config["RATE_LIMIT_MAX_REQUESTS"] = 2

        first = self.client.get("/api/unknown")
        second = self.client.get("/api/unknown")
        third = self.client.get("/api/unknown")

        self.assertEqual(first.status_code, 404)
        self.assertEqual(second.status_code, 404)
        self.assertEqual(third.status_code, 429)
        payload = third.get_json() or {}
        self.assertEqual(payload.get("error"), "rate_limit_exceeded")
        self.assertEqual(payload.get("message"), error_message("rate_limit_exceeded"))
        self.assertGreaterEqual(int(payload.get("retry_after") or 0), 0)

    def test_rate_limit_is_per_route(self) -> None:
        self.app.config["RATE_LIMIT_MAX_REQUESTS"] = 1

        self.assertEqual(self.client.get("/api/orders", headers=self.headers).status_code, 200)
        self.assertEqual(self.client.get("/api/suppliers", headers=self.headers).status_code, 200)
        self.assertEqual(self.client.get("/api/orders", headers=self.headers).status_code, 429)

    def test_credential_and_portal_paths_share_a_tighter_budget(self) -> None:
        self.app.config["RATE_LIMIT_SENSITIVE_MAX_REQUESTS"] = 2

        statuses = [self.client.post("/api/auth/login", json={}).status_code for _ in range(3)]
        self.assertEqual(statuses, [400, 400, 429])

        first = self.client.get("/api/portal/rfq/token-a")
        second = self.client.get("/api/portal/rfq/token-b")
        third = self.client.get("/api/portal/rfq/token-c")
        self.assertNotEqual(first.status_code, 429)
        self.assertNotEqual(second.status_code, 429)
        self.assertEqual(third.status_code, 429)
        self.assertEqual(third.headers.get("Cache-Control"), "no-store")

        self.assertEqual(self.client.get("/api/orders", headers=self.headers).status_code, 200)

    def test_security_headers_present(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers.get("X-Content-Type-Options"), "nosniff")
        self.assertEqual(response.headers.get("X-Frame-Options"), "DENY")
        self.assertEqual(response.headers.get("Referrer-Policy"), "strict-origin-when-cross-origin")
        self.assertIn("default-src 'none'", response.headers.get("Content-Security-Policy") or "")
        self.assertIsNone(response.headers.get("Strict-Transport-Security"))
        self.assertTrue((response.headers.get("X-Request-Id") or "").strip())
        self.assertTrue((response.headers.get("X-Response-Time-Ms") or "").strip())
        self.assertIsNone(response.headers.get("Cache-Control"))

    def test_hsts_only_over_https(self) -> None:
        response = self.client.get("/health", base_url="https://localhost")
        self.assertIn("max-age=31536000", response.headers.get("Strict-Transport-Security") or "")

    def test_headers_can_be_disabled(self) -> None:
        self.app.config["SECURITY_HEADERS_ENABLED"] = False
        response = self.client.get("/health")
        self.assertIsNone(response.headers.get("X-Frame-Options"))


if __name__ == "__main__":
    unittest.main()
