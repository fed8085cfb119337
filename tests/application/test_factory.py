from unittest.mock import AsyncMock, patch

import pytest

from cadence.application.config import AppConfig
from cadence.application.factory import build_services, get_catalog, get_storage
from cadence.infrastructure.adapters.http_catalog import HttpFlashcardCatalog
from cadence.infrastructure.adapters.memory import MemoryFlashcardCatalog, MemoryReviewStore
from cadence.infrastructure.adapters.sqlite_store import SqliteStore


def test_memory_backend():
    store, slots, catalog = get_storage(AppConfig(backend="memory"))
    assert isinstance(store, MemoryReviewStore)
    assert isinstance(catalog, MemoryFlashcardCatalog)


def test_sqlite_backend_shares_one_store(tmp_path):
    store, slots, catalog = get_storage(AppConfig(backend="sqlite", db_path=tmp_path / "r.db"))
    assert isinstance(store, SqliteStore)
    assert store is slots is catalog
    store.close()


@pytest.mark.asyncio
async def test_catalog_defaults_to_local():
    local = MemoryFlashcardCatalog()
    assert await get_catalog(AppConfig(backend="memory"), local) is local


@pytest.mark.asyncio
@patch.object(HttpFlashcardCatalog, "is_responsive", new_callable=AsyncMock)
async def test_remote_catalog_when_reachable(mock_responsive):
    mock_responsive.return_value = True
    config = AppConfig(backend="memory", catalog_url="http://cards.test")

    catalog = await get_catalog(config, MemoryFlashcardCatalog())

    assert isinstance(catalog, HttpFlashcardCatalog)
    assert catalog.base_url == "http://cards.test"
    await catalog.close()


@pytest.mark.asyncio
@patch.object(HttpFlashcardCatalog, "is_responsive", new_callable=AsyncMock)
async def test_unreachable_catalog_falls_back(mock_responsive, caplog):
    mock_responsive.return_value = False
    local = MemoryFlashcardCatalog()
    config = AppConfig(backend="memory", catalog_url="http://cards.test")

    assert await get_catalog(config, local) is local
    assert "unreachable" in caplog.text


@pytest.mark.asyncio
async def test_build_services_uses_config(tmp_path, monday):
    config = AppConfig(
        backend="sqlite",
        db_path=tmp_path / "r.db",
        new_cards_per_queue=1,
        scheduler={"graduating_interval_days": 2.0, "easy_interval_days": 4.0},
    )
    services = await build_services(config)
    try:
        services.store.enroll("kid-1", "c1")
        services.store.enroll("kid-1", "c2")
        queue = await services.reviews.get_queue("kid-1", monday, include_new=True)
        outcome = await services.reviews.submit_rating("kid-1", "c1", "good", monday, monday)
    finally:
        await services.aclose()

    assert queue.flashcard_ids == ["c1"]
    assert outcome.state.interval_days == 2.0
