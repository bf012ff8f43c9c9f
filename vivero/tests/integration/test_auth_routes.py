"""Integration tests for operator login endpoints."""

from __future__ import annotations

from httpx import AsyncClient

OPERATOR_EMAIL = "operator@vivero.test"
OPERATOR_PASSWORD = "s3cret-pass"


class TestLogin:
    async def test_login_and_me(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/auth/login", json={"email": OPERATOR_EMAIL, "password": OPERATOR_PASSWORD}
        )
        assert resp.status_code == 200
        token = resp.json()["token"]

        me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["subject"] == OPERATOR_EMAIL
        assert me.json()["method"] == "session"

    async def test_bad_credentials(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/auth/login", json={"email": OPERATOR_EMAIL, "password": "wrong"}
        )
        assert resp.status_code == 401
        assert resp.json()["ok"] is False

    async def test_empty_body_is_rejected(self, client: AsyncClient) -> None:
        resp = await client.post("/api/auth/login", json={"email": "", "password": ""})
        assert resp.status_code == 422

    async def test_me_without_token(self, client: AsyncClient) -> None:
        resp = await client.get("/api/auth/me")
        assert resp.status_code == 401


class TestLogout:
    async def test_logout_invalidates_token(
        self, client: AsyncClient, operator_token: str
    ) -> None:
        headers = {"Authorization": f"Bearer {operator_token}"}

        resp = await client.post("/api/auth/logout", headers=headers)
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}

        assert (await client.get("/api/auth/me", headers=headers)).status_code == 401
