"""
ID Mapper
Resolves AniList media to the Stremio ID served in catalogs
"""
import logging
from typing import Dict, Optional, Set
from app.models.anilist import Media
from app.services.kitsu import KitsuClient
from app.services.offline_db import OfflineIndex
from app.utils.meta_builder import get_title

logger = logging.getLogger(__name__)


def has_title(media: Media) -> bool:
    title = media.title
    return bool(title.english or title.romaji or title.native)


class IdResolver:
    """
    Resolution chain, first hit wins:

      1. per-process memo
      2. Fribb DB TMDB ID             -> "tmdb:{id}"
      3. offline DB Kitsu ID          -> "kitsu:{id}"
      4. Kitsu API search by title    -> "kitsu:{id}" (skipped for known misses
                                         and for media without any title)
      5. fallback                     -> "anilist:{id}"

    Resolved IDs never expire for the life of the process, even when the
    tables refresh underneath; the mapping is treated as stable.
    """

    def __init__(self, fribb_db: OfflineIndex, offline_db: OfflineIndex, kitsu: KitsuClient):
        self.fribb_db = fribb_db
        self.offline_db = offline_db
        self.kitsu = kitsu
        self._resolved: Dict[int, str] = {}
        # Stremio ID -> first AniList ID that resolved to it
        self._origins: Dict[str, int] = {}
        # AniList IDs the Kitsu search found nothing for
        self._negative: Set[int] = set()

    @property
    def memo_size(self) -> int:
        return len(self._resolved)

    @property
    def negative_size(self) -> int:
        return len(self._negative)

    def anilist_id_for(self, stremio_id: str) -> Optional[int]:
        """AniList ID behind a Stremio ID this resolver has handed out"""
        return self._origins.get(stremio_id)

    def _remember(self, anilist_id: int, stremio_id: str, source: str) -> str:
        self._resolved[anilist_id] = stremio_id
        self._origins.setdefault(stremio_id, anilist_id)
        logger.debug(f"idMapper: {anilist_id} -> {stremio_id} ({source})")
        return stremio_id

    async def resolve(self, media: Media) -> str:
        """
        Resolve an AniList media object to a Stremio ID. Never raises.

        Args:
            media: AniList media (id and title are used)

        Returns:
            Prefixed Stremio ID string
        """
        anilist_id = media.id

        cached = self._resolved.get(anilist_id)
        if cached is not None:
            return cached

        tmdb_id = self.fribb_db.forward(anilist_id)
        if tmdb_id:
            return self._remember(anilist_id, f"tmdb:{tmdb_id}", "Fribb DB")

        kitsu_id = self.offline_db.forward(anilist_id)
        if kitsu_id:
            return self._remember(anilist_id, f"kitsu:{kitsu_id}", "offline DB")

        if anilist_id not in self._negative and not has_title(media):
            logger.debug(f"idMapper: {anilist_id} has no title, skipping Kitsu search")
            self._negative.add(anilist_id)

        if anilist_id not in self._negative:
            try:
                kitsu_api_id = await self.kitsu.search_id(get_title(media.title))
            except Exception as e:
                logger.warning(f"idMapper: Kitsu search failed for {anilist_id}: {e}")
                kitsu_api_id = None
            # A concurrent resolve may have finished while we were searching
            cached = self._resolved.get(anilist_id)
            if cached is not None:
                return cached
            if kitsu_api_id:
                return self._remember(anilist_id, f"kitsu:{kitsu_api_id}", "Kitsu API")
            self._negative.add(anilist_id)

        return self._remember(anilist_id, f"anilist:{anilist_id}", "fallback")
