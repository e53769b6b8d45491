"""
Tests for ReadinessEngine — the presentation-facing facade.
"""

import pytest

from readiness.adapters.mock import MockBackend
from readiness.core.engine.orchestrator import ReadinessEngine
from readiness.core.errors import (
    InvalidTransition,
    OperationRejectedInFlight,
    UnknownResourceError,
)
from readiness.core.models.catalog import InstallStatus
from readiness.core.models.resource import ResourceStatus
from readiness.core.models.settings import CatalogSettings, HubConfig
from tests.fakes import FakeTimer, settle


@pytest.fixture
def mock_backend(catalog_items) -> MockBackend:
    return MockBackend(catalog=catalog_items)


@pytest.fixture
def engine(hub_config, mock_backend) -> ReadinessEngine:
    return ReadinessEngine(hub_config, mock_backend)


class TestResourceRequests:
    @pytest.mark.asyncio
    async def test_results_flow_through_subscription(self, engine):
        seen = []
        engine.subscribe("node", lambda c: seen.append(c.new.status))

        task = engine.request_check("node")
        assert seen == []  # nothing has run yet
        await task

        assert seen == [ResourceStatus.CHECKING, ResourceStatus.ABSENT]
        await engine.close()

    @pytest.mark.asyncio
    async def test_install_rejection_is_synchronous(self, engine, mock_backend):
        await engine.request_check("node")
        mock_backend.hold("install", "node")
        first = engine.request_install("node")

        with pytest.raises(OperationRejectedInFlight):
            engine.request_install("node")

        mock_backend.release("install", "node")
        assert (await first).status == ResourceStatus.READY
        with pytest.raises(InvalidTransition):
            engine.request_install("node")
        await engine.close()

    @pytest.mark.asyncio
    async def test_check_all(self, engine, mock_backend):
        mock_backend.present.add("uv")
        states = await engine.check_all()
        assert {rid: s.status for rid, s in states.items()} == {
            "node": ResourceStatus.ABSENT,
            "uv": ResourceStatus.READY,
            "resource-bundle": ResourceStatus.ABSENT,
        }
        assert engine.snapshot()["uv"].status == ResourceStatus.READY
        await engine.close()


class TestPolling:
    @pytest.mark.asyncio
    async def test_polls_configured_resources(self, hub_config, mock_backend):
        timer = FakeTimer()
        engine = ReadinessEngine(
            hub_config, mock_backend, async_sleep=timer.sleep, clock=timer.clock
        )
        engine.start_polling(interval=10)
        await settle()
        assert mock_backend.call_count("check") == 3

        await timer.advance(10)
        assert mock_backend.call_count("check") == 6
        assert engine.scheduler.running

        engine.stop_polling()
        await timer.advance(30)
        assert mock_backend.call_count("check") == 6
        await engine.close()

    @pytest.mark.asyncio
    async def test_default_interval_from_config(self, mock_backend):
        engine = ReadinessEngine(HubConfig(poll_interval=42), mock_backend)
        engine.start_polling()
        assert engine.scheduler.interval == 42
        await engine.close()
        assert not engine.scheduler.running

    @pytest.mark.asyncio
    async def test_unknown_id_rejected(self, engine):
        with pytest.raises(UnknownResourceError):
            engine.start_polling(["ruby"])
        assert not engine.scheduler.running


class TestCatalogToggle:
    @pytest.mark.asyncio
    async def test_toggle_installs_then_uninstalls(self, engine, mock_backend):
        await engine.load_catalog()
        seen = []
        engine.subscribe_catalog("filesystem", lambda c: seen.append(c.new.install_status))

        task = engine.request_catalog_toggle("filesystem", {"ROOT_DIR": "/srv"})
        with pytest.raises(OperationRejectedInFlight):
            engine.request_catalog_toggle("filesystem")
        assert (await task).install_status == InstallStatus.INSTALLED
        assert mock_backend.installed_items["filesystem"][0] == ("ROOT_DIR", "/srv")

        await engine.request_catalog_toggle("filesystem")
        assert seen == [
            InstallStatus.INSTALLING,
            InstallStatus.INSTALLED,
            InstallStatus.NOT_INSTALLED,
        ]
        await engine.close()

    @pytest.mark.asyncio
    async def test_uninstall_flag_from_config(self, catalog_items):
        backend = MockBackend(catalog=catalog_items)
        config = HubConfig(catalog=CatalogSettings(uninstall_via_backend=True))
        engine = ReadinessEngine(config, backend)
        await engine.load_catalog()

        await engine.request_catalog_toggle("github")

        assert backend.call_count("uninstall_item", "github") == 1
        await engine.close()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_close_releases_subscriptions(self, engine):
        engine.subscribe("*", lambda c: None)
        engine.subscribe("node", lambda c: None)
        engine.subscribe_catalog("*", lambda c: None)
        assert engine.subscription_count == 3

        await engine.close()

        assert engine.subscription_count == 0
        assert engine.store.subscriber_count == 0
        assert engine.closed

    @pytest.mark.asyncio
    async def test_unsubscribe_untracks(self, engine):
        unsubscribe = engine.subscribe("*", lambda c: None)
        unsubscribe()
        unsubscribe()
        assert engine.subscription_count == 0
        assert engine.store.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_close_settles_in_flight_install(self, engine, mock_backend):
        await engine.request_check("uv")
        mock_backend.hold("install", "uv")
        engine.request_install("uv")
        await settle()

        await engine.close()
        await engine.close()

        assert engine.controller.in_flight == frozenset()
        assert engine.store.get("uv").status == ResourceStatus.FAILED

    @pytest.mark.asyncio
    async def test_context_manager(self, hub_config, mock_backend):
        async with ReadinessEngine(hub_config, mock_backend) as engine:
            engine.start_polling(interval=60)
        assert engine.closed
        assert not engine.scheduler.running

    @pytest.mark.asyncio
    async def test_open_external_link(self, engine, mock_backend):
        engine.open_external_link("https://example.com/guide")
        await settle()
        assert mock_backend.opened_links == ["https://example.com/guide"]
        await engine.close()
