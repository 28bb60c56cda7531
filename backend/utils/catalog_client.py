# backend/utils/catalog_client.py
import httpx
import logging
from functools import lru_cache
from typing import Optional

from config import settings
from services.errors import ExternalServiceDegraded

logger = logging.getLogger(__name__)

class CatalogClient:
    """Thin async client for the OpenFoodFacts product search endpoint."""

    def __init__(
        self,
        api_url: str,
        timeout: float,
        max_results: int,
        user_agent: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url
        self.timeout = timeout
        self.max_results = max_results
        self.user_agent = user_agent
        # Swappable for tests (httpx.MockTransport)
        self._transport = transport

    async def search(self, term: str, page_size: Optional[int] = None) -> list:
        """Return raw product dicts; any failure is raised as ExternalServiceDegraded."""
        params = {
            "search_terms": term.strip(),
            "json": "true",
            "page_size": min(page_size or self.max_results, self.max_results),
        }
        headers = {"User-Agent": self.user_agent}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.get(self.api_url, params=params, headers=headers)
                response.raise_for_status()
                payload = response.json()
            except httpx.TimeoutException as e:
                raise ExternalServiceDegraded(f"catalog timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise ExternalServiceDegraded(f"catalog returned HTTP {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise ExternalServiceDegraded(f"catalog request failed: {e}") from e
            except ValueError as e:
                raise ExternalServiceDegraded("catalog returned malformed JSON") from e

        products = payload.get("products") if isinstance(payload, dict) else None
        if not isinstance(products, list):
            raise ExternalServiceDegraded("catalog payload has no product list")
        return [p for p in products if isinstance(p, dict)]


@lru_cache
def get_catalog_client() -> CatalogClient:
    # One configured client per process; overridden in tests
    return CatalogClient(
        api_url=settings.CATALOG_API_URL,
        timeout=settings.CATALOG_TIMEOUT_SECONDS,
        max_results=settings.CATALOG_MAX_RESULTS,
        user_agent=settings.CATALOG_USER_AGENT,
    )
