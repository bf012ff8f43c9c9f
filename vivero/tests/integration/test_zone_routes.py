"""Integration tests for zone state queries."""

from __future__ import annotations

from httpx import AsyncClient

DEVICE_KEY = "test-device-key"


class TestZoneQueries:
    async def test_list_zones_returns_every_configured_zone(self, client: AsyncClient) -> None:
        resp = await client.get("/api/zones")

        assert resp.status_code == 200
        zones = {z["zone_id"]: z for z in resp.json()}
        assert set(zones) == {"sombra", "semisombra", "sol"}
        assert all(z["valve"] == "off" for z in zones.values())

    async def test_get_zone_after_reading(self, client: AsyncClient) -> None:
        await client.post(
            "/api/data",
            json={"zone_id": "sol", "soil_moisture": 250, "ambient_humidity": 60},
            headers={"x-api-key": DEVICE_KEY},
        )

        resp = await client.get("/api/zones/sol")

        assert resp.status_code == 200
        body = resp.json()
        assert body["soil_moisture"] == 250
        assert body["ambient_humidity"] == 60
        assert body["valve"] == "on"
        assert body["reason"] == "auto_soil_low"

    async def test_valve_endpoint(self, client: AsyncClient) -> None:
        resp = await client.get("/api/valve/semisombra")

        assert resp.status_code == 200
        body = resp.json()
        assert body["ok"] is True
        assert body["valve"] == "off"
        assert body["last_updated"] is None
        assert body["data"]["zone_id"] == "semisombra"

    async def test_unknown_zone(self, client: AsyncClient) -> None:
        assert (await client.get("/api/zones/patio")).status_code == 400
        assert (await client.get("/api/valve/patio")).status_code == 400


class TestSystem:
    async def test_status(self, client: AsyncClient) -> None:
        resp = await client.get("/api/status")
        assert resp.status_code == 200
        assert resp.json()["ok"] is True

    async def test_liveness(self, client: AsyncClient) -> None:
        resp = await client.get("/health/live")
        assert resp.json() == {"status": "alive"}
        assert "X-Request-ID" in resp.headers
