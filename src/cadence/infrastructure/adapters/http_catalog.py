import logging

import httpx

from cadence.domain.constants import REQUEST_TIMEOUT, RESPONSIVENESS_TIMEOUT
from cadence.domain.review.ports import FlashcardCatalog


class HttpFlashcardCatalog(FlashcardCatalog):
    """
    Adapter for the flashcard CRUD service's HTTP API.

    Expected endpoints:
        GET {base_url}/learners/{learner_id}/flashcards -> ["card-id", ...]
            (or {"flashcards": [{"id": ...}, ...]})
        GET {base_url}/flashcards/{flashcard_id} -> 200 if it exists, 404 otherwise
    """

    def __init__(self, base_url: str, client: httpx.AsyncClient | None = None):
        self.base_url = base_url.rstrip("/")
        self.logger = logging.getLogger(__name__)
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=REQUEST_TIMEOUT)
        return self._client

    async def is_responsive(self) -> bool:
        """Check if the flashcard service answers at all."""
        try:
            resp = await self.client.get(f"{self.base_url}/health", timeout=RESPONSIVENESS_TIMEOUT)
            return resp.status_code == 200
        except httpx.HTTPError:
            return False

    async def card_ids_for_learner(self, learner_id: str) -> list[str]:
        try:
            resp = await self.client.get(f"{self.base_url}/learners/{learner_id}/flashcards")
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as e:
            self.logger.error(f"Flashcard catalog call failed for learner {learner_id}: {e}")
            raise

        if isinstance(data, dict):
            data = data.get("flashcards", [])
        if not isinstance(data, list):
            raise ValueError("flashcard catalog returned an unexpected payload")

        ids = []
        for entry in data:
            if isinstance(entry, dict):
                entry = entry.get("id")
            if entry is None:
                continue
            ids.append(str(entry))
        return ids

    async def exists(self, flashcard_id: str) -> bool:
        try:
            resp = await self.client.get(f"{self.base_url}/flashcards/{flashcard_id}")
        except httpx.HTTPError as e:
            self.logger.error(f"Flashcard catalog lookup failed for {flashcard_id}: {e}")
            raise
        if resp.status_code == 404:
            return False
        resp.raise_for_status()
        return True

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
