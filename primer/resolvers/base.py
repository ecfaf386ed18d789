"""
Shared HTTP plumbing for the catalog/archive resolvers.

Resolver failures are never errors: network problems, bad status codes and
unparseable bodies are logged and reported as "no result".
"""

import logging
import re
from typing import Any, Dict, Optional

import httpx

from primer.core.config import CatalogSettings, get_settings
from primer.core.identity import normalize

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^\w\s]+", re.UNICODE)
_WHITESPACE = re.compile(r"\s+")


def fold(value: str) -> str:
    """Looser than normalize(): punctuation becomes whitespace too."""
    value = _NON_ALNUM.sub(" ", normalize(value or ""))
    return _WHITESPACE.sub(" ", value).strip()


def unique(values) -> list:
    seen = set()
    result = []
    for value in values:
        value = (value or "").strip()
        if value and value.lower() not in seen:
            seen.add(value.lower())
            result.append(value)
    return result


class HttpResolver:
    """Base class: optional injected AsyncClient, otherwise one client per request."""

    name = "Resolver"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[CatalogSettings] = None,
    ):
        self.settings = settings or get_settings().catalog
        self._client = client

    async def _request(self, method: str, url: str, **kwargs) -> Optional[httpx.Response]:
        headers = {"User-Agent": self.settings.user_agent}
        try:
            if self._client is not None:
                return await self._client.request(method, url, headers=headers, **kwargs)
            async with httpx.AsyncClient(timeout=self.settings.timeout, follow_redirects=True) as client:
                return await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"[{self.name}] {method} {url} failed: {type(e).__name__}: {e}")
            return None

    async def _get_json(self, url: str, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        response = await self._request("GET", url, params=params)
        if response is None:
            return None
        if response.status_code != 200:
            logger.warning(f"[{self.name}] GET {url} returned HTTP {response.status_code}")
            return None
        try:
            data = response.json()
        except ValueError:
            logger.warning(f"[{self.name}] GET {url} returned a non-JSON body")
            return None
        return data if isinstance(data, dict) else None
