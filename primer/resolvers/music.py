"""
Music Resolver - iTunes Search API.

Each resolve() tries an ordered list of query variants. A catalog hit is
accepted only when
- its track title fuzzy-contains or is contained by the proposed title, and
- its reported artist equals the stated artist, composer or performer.

"Some other track by the same artist" is never accepted.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from primer.core.identity import normalize
from primer.core.models import MusicProposal, ResolvedReference
from primer.resolvers.base import HttpResolver, fold, unique

logger = logging.getLogger(__name__)

_ARTIST_SEPARATORS = re.compile(r"\s*(?:&|,|/|;|\bfeat\b|\bfeaturing\b|\band\b)\s*")


def query_variants(proposal: MusicProposal) -> List[str]:
    """Ordered, de-duplicated catalog queries for a proposal."""
    title, artist = proposal.title, proposal.artist
    variants = [f"{artist} {title}", f"{title} {artist}"]

    if proposal.is_classical or proposal.composer or proposal.performer:
        if proposal.composer:
            variants.append(f"{proposal.composer} {title}")
        if proposal.performer:
            variants.append(f"{proposal.performer} {title}")
            if proposal.composer:
                variants.append(f"{proposal.composer} {title} {proposal.performer}")

    variants.append(proposal.search_query)
    variants.append(title)
    return unique(variants)


def title_matches(proposed: str, candidate: str) -> bool:
    a, b = fold(proposed), fold(candidate)
    if not a or not b:
        return False
    return a in b or b in a


def artist_matches(proposal: MusicProposal, candidate_artist: str) -> bool:
    accepted = {
        normalize(name)
        for name in (proposal.artist, proposal.composer, proposal.performer)
        if name
    }
    if not accepted or not candidate_artist:
        return False

    reported = normalize(candidate_artist)
    if reported in accepted:
        return True
    # Catalog entries often credit several artists ("Yo-Yo Ma & Kathryn Stott")
    parts = {normalize(part) for part in _ARTIST_SEPARATORS.split(candidate_artist) if part.strip()}
    return bool(parts & accepted)


class MusicResolver(HttpResolver):
    name = "MusicResolver"

    async def search(self, term: str) -> List[Dict[str, Any]]:
        data = await self._get_json(
            self.settings.itunes_search_url,
            {
                "term": term,
                "media": "music",
                "entity": "song",
                "country": self.settings.itunes_country,
                "limit": self.settings.itunes_limit,
            },
        )
        if not data:
            return []
        return [r for r in data.get("results", []) if isinstance(r, dict)]

    def accept(self, proposal: MusicProposal, result: Dict[str, Any]) -> bool:
        return (
            title_matches(proposal.title, result.get("trackName", ""))
            and artist_matches(proposal, result.get("artistName", ""))
            and bool(result.get("trackViewUrl"))
        )

    async def resolve(self, proposal: MusicProposal) -> Optional[ResolvedReference]:
        for term in query_variants(proposal):
            results = await self.search(term)
            for result in results:
                if self.accept(proposal, result):
                    logger.info(
                        f"[MusicResolver] Matched {proposal.describe()} -> "
                        f"'{result.get('trackName')}' by {result.get('artistName')} (query '{term}')"
                    )
                    return ResolvedReference(
                        url=result["trackViewUrl"],
                        source_url=result.get("collectionViewUrl"),
                    )
            logger.debug(f"[MusicResolver] No acceptable match in {len(results)} result(s) for '{term}'")

        logger.info(f"[MusicResolver] No catalog match for {proposal.describe()}")
        return None
