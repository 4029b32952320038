"""
AniList API Client
Typed access to the AniList GraphQL API through the shared query queue
"""
import logging
from typing import Any, Dict, Optional
from pydantic import ValidationError
from app.core.config import settings
from app.core.errors import UpstreamRejected
from app.models.anilist import Media, Page
from app.utils.query_queue import GraphQLQueryQueue

logger = logging.getLogger(__name__)


class AniListClient:
    """Async client for AniList"""

    def __init__(self, queue: GraphQLQueryQueue, per_page: Optional[int] = None):
        self.queue = queue
        self.per_page = per_page or settings.ANILIST_PER_PAGE

    async def close(self):
        await self.queue.close()

    async def query_page(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Page:
        """
        Query a paginated endpoint and return the Page result

        Args:
            query: GraphQL query with a Page root
            variables: Query variables (perPage defaults to the configured size)

        Returns:
            Parsed Page
        """
        merged = {"perPage": self.per_page}
        merged.update(variables or {})
        data = await self.queue.submit(query, merged)
        try:
            return Page.model_validate(data.get("Page") or {})
        except ValidationError as exc:
            raise UpstreamRejected(f"AniList returned an unexpected Page shape: {exc}") from exc

    async def query_media(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Optional[Media]:
        """
        Query a single media item

        Returns:
            Parsed Media or None when AniList has no such item
        """
        data = await self.queue.submit(query, variables or {})
        raw = data.get("Media")
        if not raw:
            return None
        try:
            return Media.model_validate(raw)
        except ValidationError as exc:
            raise UpstreamRejected(f"AniList returned an unexpected Media shape: {exc}") from exc
