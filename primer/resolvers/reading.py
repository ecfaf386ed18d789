"""
Reading Resolver - Google Custom Search.

Picks the best link for a suggested reading: an encyclopedia page first,
then a fixed allow-list of reputable domains, then the first result.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx

from primer.core.config import CatalogSettings, SearchSettings, get_settings
from primer.resolvers.base import HttpResolver

logger = logging.getLogger(__name__)

ENCYCLOPEDIA_DOMAIN = "wikipedia.org"

REPUTABLE_DOMAINS = (
    "plato.stanford.edu",
    "britannica.com",
    "poetryfoundation.org",
    "gutenberg.org",
    "jstor.org",
    "arxiv.org",
    "iep.utm.edu",
    "newyorker.com",
    "theatlantic.com",
    "aeon.co",
)


def _on_domain(url: str, domain: str) -> bool:
    host = (urlparse(url).hostname or "").lower()
    return host == domain or host.endswith("." + domain)


def pick_best_link(results: List[Dict[str, Any]]) -> Optional[str]:
    links = [r.get("link") for r in results if r.get("link")]
    if not links:
        return None
    for link in links:
        if _on_domain(link, ENCYCLOPEDIA_DOMAIN):
            return link
    for domain in REPUTABLE_DOMAINS:
        for link in links:
            if _on_domain(link, domain):
                return link
    return links[0]


class ReadingResolver(HttpResolver):
    name = "ReadingResolver"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[CatalogSettings] = None,
        search_settings: Optional[SearchSettings] = None,
    ):
        super().__init__(client=client, settings=settings)
        self.search_settings = search_settings or get_settings().search

    async def search(self, query: str) -> List[Dict[str, Any]]:
        if not self.search_settings.configured:
            logger.warning("[ReadingResolver] Search credentials not configured; skipping lookup")
            return []

        data = await self._get_json(
            self.search_settings.url,
            {
                "key": self.search_settings.api_key,
                "cx": self.search_settings.cx,
                "q": query,
                "num": self.search_settings.num_results,
            },
        )
        items = (data or {}).get("items", [])
        logger.info(f"[ReadingResolver] Search for '{query}' returned {len(items)} result(s)")
        return items

    async def resolve(self, title: str, query: Optional[str] = None) -> Optional[str]:
        results = await self.search(query or title)
        link = pick_best_link(results)
        if link:
            logger.info(f"[ReadingResolver] '{title}' -> {link}")
        return link
