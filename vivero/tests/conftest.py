import os
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

# Must be set before the application module builds its middleware stack.
os.environ.setdefault("VIVERO_RATE_LIMIT_PER_MINUTE", "100000")
os.environ.setdefault("VIVERO_STORE_BACKEND", "memory")

from vivero.api.dependencies import (  # noqa: E402
    get_session_service,
    get_settings_dependency,
    get_zone_context,
)
from vivero.api.main import app  # noqa: E402
from vivero.config import Settings, ZoneSettings  # noqa: E402
from vivero.core.context import ZoneContext  # noqa: E402
from vivero.core.zones import ZoneConfigTable  # noqa: E402
from vivero.integrations.kv_store import MemoryBackend  # noqa: E402
from vivero.services.session_service import SessionService  # noqa: E402

DEVICE_KEY = "test-device-key"
OPERATOR_EMAIL = "operator@vivero.test"
OPERATOR_PASSWORD = "s3cret-pass"


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        api_key=DEVICE_KEY,
        operator_email=OPERATOR_EMAIL,
        operator_password=OPERATOR_PASSWORD,
        store_backend="memory",
        zones={
            "sombra": ZoneSettings(soil_threshold=400, temp_high=32, temp_low=10),
            "semisombra": ZoneSettings(soil_threshold=350, temp_high=34, temp_low=10),
            "sol": ZoneSettings(soil_threshold=300, temp_high=36, temp_low=10),
        },
    )


@pytest.fixture()
def zones(test_settings: Settings) -> ZoneConfigTable:
    return ZoneConfigTable.from_settings(test_settings.zones)


@pytest.fixture()
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture()
async def context(
    zones: ZoneConfigTable, backend: MemoryBackend
) -> AsyncGenerator[ZoneContext, None]:
    ctx = ZoneContext.build(zones, backend)
    yield ctx
    await ctx.close()


@pytest.fixture()
def sessions(test_settings: Settings) -> SessionService:
    return SessionService.from_settings(test_settings)


@pytest.fixture()
async def client(
    context: ZoneContext, sessions: SessionService, test_settings: Settings
) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_zone_context] = lambda: context
    app.dependency_overrides[get_session_service] = lambda: sessions
    app.dependency_overrides[get_settings_dependency] = lambda: test_settings
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
async def operator_token(sessions: SessionService) -> str:
    session = await sessions.login(OPERATOR_EMAIL, OPERATOR_PASSWORD)
    return session.token
