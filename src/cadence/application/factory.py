"""
Service Factory
Centralizes the logic for selecting storage adapters and wiring services.
"""

import logging
from dataclasses import dataclass

from cadence.application.config import AppConfig
from cadence.application.review_service import ReviewService
from cadence.application.slot_service import SlotService
from cadence.application.stats.service import AnalyticsService
from cadence.domain.review.ports import FlashcardCatalog, ReviewStore
from cadence.domain.slots.ports import SlotRepository
from cadence.infrastructure.adapters.http_catalog import HttpFlashcardCatalog
from cadence.infrastructure.adapters.memory import (
    MemoryFlashcardCatalog,
    MemoryReviewStore,
    MemorySlotRepository,
)
from cadence.infrastructure.adapters.sqlite_store import SqliteStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: ReviewStore
    slot_repo: SlotRepository
    catalog: FlashcardCatalog
    reviews: ReviewService
    slots: SlotService
    analytics: AnalyticsService

    async def aclose(self) -> None:
        """Release the database connection and HTTP client, if any."""
        if isinstance(self.catalog, HttpFlashcardCatalog):
            await self.catalog.close()
        if isinstance(self.store, SqliteStore):
            self.store.close()


def get_storage(config: AppConfig) -> tuple[ReviewStore, SlotRepository, FlashcardCatalog]:
    """
    Returns the store, slot repository and local catalog for the configured backend.
    """
    if config.backend == "memory":
        return MemoryReviewStore(), MemorySlotRepository(), MemoryFlashcardCatalog()

    sqlite = SqliteStore(config.db_path)
    return sqlite, sqlite, sqlite


async def get_catalog(config: AppConfig, local: FlashcardCatalog) -> FlashcardCatalog:
    """
    Prefer the remote flashcard service when configured and reachable;
    otherwise use local enrollments.
    """
    if not config.catalog_url:
        return local

    remote = HttpFlashcardCatalog(config.catalog_url)
    if await remote.is_responsive():
        return remote

    logger.warning(f"Flashcard service at {config.catalog_url} unreachable; using local enrollments")
    await remote.close()
    return local


async def build_services(config: AppConfig) -> Services:
    store, slot_repo, local_catalog = get_storage(config)
    catalog = await get_catalog(config, local_catalog)

    return Services(
        store=store,
        slot_repo=slot_repo,
        catalog=catalog,
        reviews=ReviewService(
            store,
            slot_repo,
            catalog,
            params=config.scheduler,
            new_card_limit=config.new_cards_per_queue,
            search_days=config.slot_search_days,
        ),
        slots=SlotService(slot_repo),
        analytics=AnalyticsService(store, window_days=config.analytics_window_days),
    )
