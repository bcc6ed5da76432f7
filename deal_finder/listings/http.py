"""Listing source for a paginated JSON search API (RapidAPI-style)."""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import requests

from deal_finder.validation import PropertyKind

from .base import ListingSource

logger = logging.getLogger(__name__)

KIND_PATHS = {
    PropertyKind.RENTAL: "rentals",
    PropertyKind.SALE: "sales",
}


class HttpListingSource(ListingSource):
    """Fetches search pages from ``{base_url}/{rentals|sales}/search``.

    The API answers with either ``{"results": [...]}``, ``{"listings": [...]}``
    or a bare list; all three are accepted.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        if api_key:
            self._session.headers.update({
                "X-RapidAPI-Key": api_key,
                "X-RapidAPI-Host": urlparse(self._base_url).netloc,
            })

    @property
    def name(self) -> str:
        return "http"

    def fetch_page(
        self,
        neighborhood: str,
        property_kind: PropertyKind,
        offset: int,
        limit: int,
    ) -> List[Dict[str, Any]]:
        url = f"{self._base_url}/{KIND_PATHS[PropertyKind(property_kind)]}/search"
        params = {"areas": neighborhood, "limit": limit, "offset": offset}

        logger.debug(f"GET {url} {params}")
        response = self._session.get(url, params=params, timeout=self._timeout)
        response.raise_for_status()
        return self._records(response.json())

    @staticmethod
    def _records(payload: Any) -> List[Dict[str, Any]]:
        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict):
            for key in ("results", "listings"):
                if isinstance(payload.get(key), list):
                    return payload[key]
        raise ValueError(f"Unexpected search response shape: {type(payload).__name__}")
