"""
Tests for the per-IP rate limiting middleware
"""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from bankease.api.rate_limit import RateLimiter, RateLimitRule


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestRateLimiter:

    def setup_method(self):
        self.clock = FakeClock()
        self.limiter = RateLimiter(
            rules=[
                RateLimitRule("/api/", 5),
                RateLimitRule("/api/auth/", 2, "Too many authentication attempts"),
            ],
            window_seconds=60,
            clock=self.clock
        )
        app = FastAPI()
        app.middleware("http")(self.limiter)

        @app.get("/api/auth/login")
        async def login():
            return {"ok": True}

        @app.get("/api/other")
        async def other():
            return {"ok": True}

        @app.get("/health")
        async def health():
            return {"ok": True}

        self.client = TestClient(app)

    def test_tightest_matching_rule_wins(self):
        assert self.client.get("/api/auth/login").status_code == 200
        assert self.client.get("/api/auth/login").status_code == 200

        response = self.client.get("/api/auth/login")
        assert response.status_code == 429
        assert response.json()["message"] == "Too many authentication attempts"

        # Auth hits also count toward the general limit
        for _ in range(3):
            assert self.client.get("/api/other").status_code == 200
        assert self.client.get("/api/other").status_code == 429

    def test_rejected_requests_are_not_counted(self):
        for _ in range(2):
            self.client.get("/api/auth/login")
        for _ in range(5):
            assert self.client.get("/api/auth/login").status_code == 429

        assert self.client.get("/api/other").status_code == 200

    def test_window_slides(self):
        for _ in range(2):
            self.client.get("/api/auth/login")
        assert self.client.get("/api/auth/login").status_code == 429

        self.clock.now += 61
        assert self.client.get("/api/auth/login").status_code == 200

    def test_unmatched_paths_pass_through(self):
        for _ in range(10):
            assert self.client.get("/health").status_code == 200
        assert self.limiter.requests == {}
