# tools/images.py
"""Unsplash photo search used to illustrate activity cards."""
from __future__ import annotations

import re
from typing import List, Optional
from urllib.parse import quote

import httpx

from config import HTTP_MAX_ATTEMPTS, UNSPLASH_SEARCH_URL, get_unsplash_access_key
from tools.errors import ParseFailure, UpstreamFailure
from tools.fallback import with_fallback
from tools.http import client_scope, request_json
from workflows.schemas import ImageResult, ImageUrls

PLACEHOLDER_BASE_URL = "https://source.unsplash.com/featured/"


def placeholder_image_url(destination: Optional[str], name: Optional[str]) -> str:
    """Deterministic stand-in image for an activity when search finds nothing."""
    words = [w for w in re.split(r"\W+", name or "") if w]
    terms = [destination.strip()] if destination and destination.strip() else []
    terms.extend(words)
    return PLACEHOLDER_BASE_URL + "?" + ",".join(quote(t) for t in terms)


def _parse_results(payload, query: str) -> List[ImageResult]:
    results = payload.get("results") if isinstance(payload, dict) else None
    if not isinstance(results, list):
        raise ParseFailure(f"Image search for {query!r} returned no results list")
    images = []
    for item in results:
        if not isinstance(item, dict) or not isinstance(item.get("urls"), dict):
            continue
        images.append(
            ImageResult(
                id=str(item.get("id") or len(images)),
                description=item.get("description") or item.get("alt_description"),
                urls=ImageUrls(**{k: item["urls"].get(k) for k in ImageUrls.model_fields}),
                source="unsplash",
            )
        )
    return images


class ImageSearchClient:
    def __init__(
        self,
        access_key: Optional[str] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        search_url: str = UNSPLASH_SEARCH_URL,
        max_attempts: int = HTTP_MAX_ATTEMPTS,
    ):
        self.access_key = access_key if access_key is not None else get_unsplash_access_key()
        self._client = client
        self.search_url = search_url
        self.max_attempts = max_attempts

    async def search(self, query: str, count: int = 1) -> List[ImageResult]:
        """Photos matching ``query``; an empty list when the provider is unavailable."""
        return await with_fallback(
            "image_search",
            lambda: self._search_live(query, count),
            lambda: [],
        )

    async def _search_live(self, query: str, count: int) -> List[ImageResult]:
        if not self.access_key:
            raise UpstreamFailure("Unsplash access key is not configured")
        async with client_scope(self._client) as client:
            payload = await request_json(
                client,
                "GET",
                self.search_url,
                params={"query": query, "per_page": max(1, count), "client_id": self.access_key},
                max_attempts=self.max_attempts,
            )
        return _parse_results(payload, query)[:count]

