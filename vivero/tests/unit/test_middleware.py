"""Tests for vivero.api.middleware: per-IP rate limiting."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.routing import Route

from vivero.api.middleware import RateLimitMiddleware


async def _homepage(request: Request) -> PlainTextResponse:
    return PlainTextResponse("ok")


async def _health(request: Request) -> PlainTextResponse:
    return PlainTextResponse("healthy")


@pytest.fixture()
def rate_limit_app() -> Starlette:
    app = Starlette(
        routes=[
            Route("/", _homepage),
            Route("/health", _health),
            Route("/api/status", _health),
        ],
    )
    app.add_middleware(RateLimitMiddleware, requests_per_minute=3)
    return app


class TestRateLimitMiddleware:
    """Tests for the per-IP sliding-window rate limiter."""

    async def test_request_below_limit_passes(self, rate_limit_app: Starlette) -> None:
        transport = ASGITransport(app=rate_limit_app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.get("/")
            assert resp.status_code == 200
            assert resp.text == "ok"

    async def test_requests_exceeding_limit_returns_429(self, rate_limit_app: Starlette) -> None:
        transport = ASGITransport(app=rate_limit_app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            for _ in range(3):
                resp = await client.get("/")
                assert resp.status_code == 200

            resp = await client.get("/")
            assert resp.status_code == 429
            assert resp.headers["Retry-After"] == "60"
            assert "Rate limit" in resp.json()["detail"]

    async def test_health_paths_are_exempt(self, rate_limit_app: Starlette) -> None:
        transport = ASGITransport(app=rate_limit_app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            for _ in range(4):
                await client.get("/")

            assert (await client.get("/health")).status_code == 200
            assert (await client.get("/api/status")).status_code == 200

    async def test_different_ips_have_independent_limits(
        self, rate_limit_app: Starlette
    ) -> None:
        first = ASGITransport(app=rate_limit_app, client=("10.0.0.1", 5000))
        async with AsyncClient(transport=first, base_url="http://test") as client_a:
            for _ in range(3):
                await client_a.get("/")
            assert (await client_a.get("/")).status_code == 429

        second = ASGITransport(app=rate_limit_app, client=("10.0.0.2", 5000))
        async with AsyncClient(transport=second, base_url="http://test") as client_b:
            assert (await client_b.get("/")).status_code == 200
