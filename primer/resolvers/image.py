"""
Image Resolver - Wikimedia Commons, with a Wikipedia page-image fallback.

Query variants are tried in order: caller hint, title+artist, artist+title,
title alone. A candidate is accepted only if its image URL answers a HEAD
request with 200 and an image/* content type.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from primer.core.models import ImageProposal, ResolvedReference
from primer.resolvers.base import HttpResolver, unique

logger = logging.getLogger(__name__)

# Scans and documents that happen to match an artwork search
SKIPPED_MIME_TYPES = {"application/pdf", "image/vnd.djvu", "image/x-djvu"}


def query_variants(proposal: ImageProposal) -> List[str]:
    title, artist = proposal.title, proposal.artist
    return unique([
        proposal.search_query,
        f"{title} {artist}",
        f"{artist} {title}",
        title,
    ])


class ImageResolver(HttpResolver):
    name = "ImageResolver"

    async def is_reachable(self, url: str) -> bool:
        response = await self._request("HEAD", url)
        if response is None or response.status_code != 200:
            return False
        content_type = response.headers.get("content-type", "")
        return content_type.lower().startswith("image/")

    async def search_commons(self, query: str) -> List[Dict[str, Any]]:
        """Candidates as dicts with image_url, page_url and mime."""
        data = await self._get_json(
            self.settings.commons_api_url,
            {
                "action": "query",
                "format": "json",
                "generator": "search",
                "gsrsearch": query,
                "gsrnamespace": 6,
                "gsrlimit": 5,
                "prop": "imageinfo",
                "iiprop": "url|mime",
                "iiurlwidth": self.settings.thumb_width,
            },
        )
        pages = (data or {}).get("query", {}).get("pages", {})
        if isinstance(pages, dict):
            pages = list(pages.values())

        # Keep the search ranking
        pages = sorted(pages, key=lambda p: p.get("index", 0))

        candidates = []
        for page in pages:
            info = (page.get("imageinfo") or [{}])[0]
            image_url = info.get("thumburl") or info.get("url")
            if not image_url:
                continue
            if info.get("mime") in SKIPPED_MIME_TYPES:
                continue
            file_title = page.get("title", "").replace(" ", "_")
            candidates.append({
                "image_url": image_url,
                "page_url": info.get("descriptionurl")
                or f"https://commons.wikimedia.org/wiki/{quote(file_title)}",
                "mime": info.get("mime", ""),
            })
        return candidates

    async def search_wikipedia(self, query: str) -> List[Dict[str, Any]]:
        data = await self._get_json(
            self.settings.wikipedia_api_url,
            {
                "action": "query",
                "format": "json",
                "generator": "search",
                "gsrsearch": query,
                "gsrlimit": 3,
                "prop": "pageimages",
                "piprop": "thumbnail",
                "pithumbsize": self.settings.thumb_width,
            },
        )
        pages = (data or {}).get("query", {}).get("pages", {})
        if isinstance(pages, dict):
            pages = list(pages.values())
        pages = sorted(pages, key=lambda p: p.get("index", 0))

        candidates = []
        for page in pages:
            thumbnail = (page.get("thumbnail") or {}).get("source")
            if not thumbnail:
                continue
            page_title = page.get("title", "").replace(" ", "_")
            candidates.append({
                "image_url": thumbnail,
                "page_url": f"https://en.wikipedia.org/wiki/{quote(page_title)}",
            })
        return candidates

    async def _first_reachable(self, candidates: List[Dict[str, Any]]) -> Optional[ResolvedReference]:
        for candidate in candidates:
            if await self.is_reachable(candidate["image_url"]):
                return ResolvedReference(url=candidate["image_url"], source_url=candidate["page_url"])
            logger.debug(f"[ImageResolver] Unreachable image {candidate['image_url']}")
        return None

    async def resolve(self, proposal: ImageProposal) -> Optional[ResolvedReference]:
        for query in query_variants(proposal):
            reference = await self._first_reachable(await self.search_commons(query))
            if reference:
                logger.info(f"[ImageResolver] Commons match for {proposal.describe()} (query '{query}')")
                return reference

        reference = await self._first_reachable(
            await self.search_wikipedia(f"{proposal.title} {proposal.artist}")
        )
        if reference:
            logger.info(f"[ImageResolver] Wikipedia page image for {proposal.describe()}")
            return reference

        logger.info(f"[ImageResolver] No archive image for {proposal.describe()}")
        return None
