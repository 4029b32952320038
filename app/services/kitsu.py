"""
Kitsu API Client
Title search and episode listing against the public Kitsu API
"""
import aiohttp
import asyncio
import logging
from typing import Any, Dict, List, Optional
from pydantic import ValidationError
from app.core.config import settings
from app.models.kitsu import KitsuEpisode

logger = logging.getLogger(__name__)


class KitsuClient:
    """Async client for Kitsu"""

    HEADERS = {"Accept": "application/vnd.api+json"}

    def __init__(self, base_url: Optional[str] = None):
        self.base_url = (base_url or settings.KITSU_URL).rstrip("/")
        self.session: Optional[aiohttp.ClientSession] = None

    async def get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session"""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=10)
            )
        return self.session

    async def close(self):
        """Close aiohttp session"""
        if self.session and not self.session.closed:
            await self.session.close()

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """GET a JSON:API document; None on any non-200 or transport failure"""
        try:
            session = await self.get_session()
            async with session.get(url, params=params, headers=self.HEADERS) as response:
                if response.status != 200:
                    logger.warning(f"Kitsu request failed: HTTP {response.status} for {url}")
                    return None
                return await response.json(content_type=None)
        except asyncio.TimeoutError:
            logger.warning(f"Kitsu request timeout: {url}")
            return None
        except (aiohttp.ClientError, ValueError) as e:
            logger.warning(f"Kitsu request error for {url}: {e}")
            return None

    async def search_id(self, title: str) -> Optional[str]:
        """
        Search Kitsu by title and return the ID of the best match

        Args:
            title: Display title to search for

        Returns:
            Numeric Kitsu ID as a string, or None if nothing matched
        """
        if not title:
            return None

        document = await self._get(
            f"{self.base_url}/anime",
            {"filter[text]": title, "page[limit]": 1},
        )
        if document is None:
            return None

        data = document.get("data") or []
        if not data:
            logger.debug(f'Kitsu: no results for "{title}"')
            return None

        kitsu_id = data[0].get("id") if isinstance(data[0], dict) else None
        return str(kitsu_id) if kitsu_id else None

    async def fetch_episodes(self, kitsu_id: str) -> List[KitsuEpisode]:
        """
        Fetch every episode for a Kitsu anime, following pagination

        Args:
            kitsu_id: Numeric Kitsu ID

        Returns:
            Episodes in upstream order (partial list if a later page fails)
        """
        url: Optional[str] = f"{self.base_url}/anime/{kitsu_id}/episodes"
        params: Optional[Dict[str, Any]] = {
            "page[limit]": settings.KITSU_EPISODE_PAGE_LIMIT,
            "sort": "number",
        }
        episodes: List[KitsuEpisode] = []

        for _ in range(settings.KITSU_MAX_EPISODE_PAGES):
            if not url:
                break
            document = await self._get(url, params)
            if document is None:
                break

            for resource in document.get("data") or []:
                attributes = resource.get("attributes") if isinstance(resource, dict) else None
                if not attributes:
                    continue
                try:
                    episodes.append(KitsuEpisode.model_validate(attributes))
                except ValidationError:
                    logger.debug(f"Skipping malformed Kitsu episode for {kitsu_id}")

            # links.next already carries the paging query string
            url = (document.get("links") or {}).get("next")
            params = None

        return episodes
