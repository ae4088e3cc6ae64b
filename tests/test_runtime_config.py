"""
tests.test_runtime_config

Process-level wiring: schema bootstrap, uvicorn options, log format and the
per-browser client registry.
"""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from assoc_portal.api.__main__ import uvicorn_options
from assoc_portal.api.app import create_app
from assoc_portal.api.clients import ClientRegistry
from assoc_portal.backend.local import LocalBackend
from assoc_portal.db.init_db import init_db
from assoc_portal.settings import Settings


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_init_db_reports_only_missing_tables() -> None:
    engine = create_async_engine("sqlite+aiosqlite://")
    try:
        created = await init_db(engine)
        assert "profiles" in created and "auth_users" in created
        assert created.index("auth_users") < created.index("profiles")
        assert await init_db(engine) == []
    finally:
        await engine.dispose()


def test_uvicorn_options_follow_environment(settings: Settings) -> None:
    dev = uvicorn_options(settings.model_copy(update={"env": "dev", "log_level": "DEBUG"}))
    assert dev["log_level"] == "debug"
    assert dev["log_config"] is None
    assert "proxy_headers" not in dev

    prod = uvicorn_options(settings.model_copy(update={"env": "prod"}))
    assert prod["proxy_headers"] is True
    assert prod["access_log"] is False


def test_console_log_format_is_accepted(settings: Settings) -> None:
    console = settings.model_copy(update={"log_format": "console"})
    app = create_app(settings=console, backend=LocalBackend(settings=console))
    assert app.state.settings.log_format == "console"


def test_log_format_is_validated() -> None:
    with pytest.raises(ValueError):
        Settings(log_format="xml")


@pytest.mark.asyncio
async def test_registry_evicts_idle_clients(backend: LocalBackend, settings: Settings) -> None:
    clock = FakeClock()
    registry = ClientRegistry(
        client_factory=backend.client,
        settings=settings.model_copy(update={"portal_client_idle_seconds": 60.0}),
        clock=clock,
    )
    stale, _ = await registry.get_or_create(None)
    active, _ = await registry.get_or_create(None)
    assert len(registry) == 2

    clock.now += 45
    assert registry.get(active.sid) is active
    clock.now += 30

    fresh, created = await registry.get_or_create(None)
    assert created
    assert registry.get(stale.sid) is None
    assert registry.get(active.sid) is active
    assert len(registry) == 2

    await registry.close()
    assert len(registry) == 0
    assert fresh.store.state.identity is None


@pytest.mark.asyncio
async def test_known_cookie_reuses_its_client(backend: LocalBackend, settings: Settings) -> None:
    registry = ClientRegistry(client_factory=backend.client, settings=settings)
    portal, created = await registry.get_or_create(None)
    assert created

    again, created = await registry.get_or_create(portal.sid)
    assert again is portal and not created
    assert await registry.evict_idle() == 0
    await registry.close()
