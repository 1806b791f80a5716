"""
Paginated Fetcher - Retrieve the official and community node registries.

The official registry is paginated: page 1 carries the total page count in
`meta.pagination.pageCount`, the remaining pages are fetched sequentially
and their `data` arrays concatenated. The community registry is a single
unpaginated document.

There is no retry and no partial result: any failed page raises
RegistryTransportError and the caller keeps its previous cache.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .errors import RegistryTransportError
from .http import HttpClient
from .models import RawCommunityRecord, RawNodeRecord


logger = logging.getLogger(__name__)


class PaginatedFetcher:
    """Fetch raw node records from the n8n registry APIs."""

    def __init__(
        self,
        official_url: str,
        community_url: str,
        page_size: int = 500,
        client: Optional[HttpClient] = None,
    ):
        self.official_url = official_url
        self.community_url = community_url
        self.page_size = page_size
        self.client = client or HttpClient()

    def _fetch_page(self, page: int) -> Dict[str, Any]:
        params = {
            "pagination[pageSize]": self.page_size,
            "pagination[page]": page,
        }
        logger.info("Fetching official page %d", page)
        payload = self.client.get_json(self.official_url, params=params)
        _require_data(payload, self.official_url)
        return payload

    def fetch_official_pages(self) -> List[Dict[str, Any]]:
        """
        Fetch every page of the official registry.

        Returns:
            Raw `data` entries of all pages, in page order
        """
        first = self._fetch_page(1)
        page_count = _page_count(first, self.official_url)
        logger.info("Official registry has %d page(s)", page_count)

        entries: List[Dict[str, Any]] = list(first["data"])
        for page in range(2, page_count + 1):
            entries.extend(self._fetch_page(page)["data"])
        return entries

    def fetch_official(self) -> List[RawNodeRecord]:
        """Fetch and parse the official registry."""
        entries = self.fetch_official_pages()
        records = [RawNodeRecord.from_api(e) for e in entries if isinstance(e, dict)]
        logger.info("Fetched %d official node(s)", len(records))
        return records

    def fetch_community(self) -> List[RawCommunityRecord]:
        """Fetch and parse the community registry (single request)."""
        logger.info("Fetching community registry")
        payload = self.client.get_json(self.community_url)
        _require_data(payload, self.community_url)
        records = [
            RawCommunityRecord.from_api(e) for e in payload["data"] if isinstance(e, dict)
        ]
        logger.info("Fetched %d community node(s)", len(records))
        return records


def _require_data(payload: Any, url: str) -> None:
    if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
        raise RegistryTransportError("Response has no 'data' array", url=url)


def _page_count(payload: Dict[str, Any], url: str) -> int:
    try:
        count = int(payload["meta"]["pagination"]["pageCount"])
    except (KeyError, TypeError, ValueError) as e:
        raise RegistryTransportError(
            f"Response has no usable pagination metadata: {e}", url=url
        ) from e
    # An empty registry still reports page 1
    return max(count, 1)
