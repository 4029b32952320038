"""
Catalog Service
Answers catalog-page and meta requests from AniList, TMDB and Kitsu
"""
import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Mapping, Optional, Tuple
from app.core.config import settings
from app.core.errors import UpstreamError
from app.models.stremio import Manifest, ManifestCatalog, ManifestExtra, MetaDetail, MetaPreview
from app.services.anilist import AniListClient
from app.services.anilist_queries import (
    ANIME_DISCOVER_QUERY,
    MEDIA_BY_ID_QUERY,
    POPULAR_QUERY,
    SEASON_QUERY,
    TOP_QUERY,
    TRENDING_QUERY,
)
from app.services.cache import CacheManager
from app.services.id_mapper import IdResolver
from app.services.kitsu import KitsuClient
from app.services.offline_db import OfflineIndex
from app.services.tmdb import TMDBClient
from app.utils.meta_builder import (
    build_full_meta,
    build_meta_from_tmdb,
    build_meta_preview,
    build_videos_from_kitsu,
    current_season,
)

logger = logging.getLogger(__name__)

# Stremio display values -> AniList enum values for the discover catalog
FORMAT_MAP = {"TV": "TV", "Movie": "MOVIE", "OVA": "OVA", "ONA": "ONA", "Special": "SPECIAL"}
STATUS_MAP = {"Airing": "RELEASING", "Finished": "FINISHED", "Upcoming": "NOT_YET_RELEASED"}
GENRES = [
    "Action", "Adventure", "Comedy", "Drama", "Fantasy", "Horror",
    "Mahou Shoujo", "Mecha", "Music", "Mystery", "Psychological",
    "Romance", "Sci-Fi", "Slice of Life", "Sports", "Supernatural", "Thriller",
]
DISCOVER_FILTERS = ("genre", "format", "status", "year")

_STREMIO_ID_RE = re.compile(r"^(tmdb|kitsu|anilist):(\d+)$")


class MetaNotFound(LookupError):
    """No upstream source has a record for the requested ID"""


@dataclass(frozen=True)
class CatalogDefinition:
    """A catalog served by the addon"""
    id: str
    type: str
    name: str
    query: str
    ttl: int
    filters: Tuple[str, ...] = ()
    item_type: Optional[str] = None
    seasonal: bool = False


def discover_years(today: Optional[date] = None) -> List[str]:
    """Year filter options, newest first"""
    current_year = (today or date.today()).year
    return [str(year) for year in range(current_year, settings.BUILD_FIRST_YEAR - 1, -1)]


def default_catalogs() -> Dict[str, CatalogDefinition]:
    definitions = [
        CatalogDefinition("anilist-trending", "series", "Trending Now", TRENDING_QUERY,
                          settings.CACHE_TTL_TRENDING),
        CatalogDefinition("anilist-season", "series", "Popular This Season", SEASON_QUERY,
                          settings.CACHE_TTL_SEASON, seasonal=True),
        CatalogDefinition("anilist-popular", "series", "Most Popular", POPULAR_QUERY,
                          settings.CACHE_TTL_POPULAR),
        CatalogDefinition("anilist-top", "series", "Top Rated", TOP_QUERY,
                          settings.CACHE_TTL_TOP),
        CatalogDefinition("anilist-anime", "anime", "Anime", ANIME_DISCOVER_QUERY,
                          settings.CACHE_TTL_DISCOVER, filters=DISCOVER_FILTERS, item_type="anime"),
    ]
    return {definition.id: definition for definition in definitions}


def _filter_options(name: str) -> Optional[List[str]]:
    if name == "genre":
        return GENRES
    if name == "format":
        return list(FORMAT_MAP)
    if name == "status":
        return list(STATUS_MAP)
    if name == "year":
        return discover_years()
    return None


def build_manifest(catalogs: Mapping[str, CatalogDefinition]) -> Manifest:
    """Stremio manifest listing every catalog with its extras"""
    entries = []
    for definition in catalogs.values():
        extra = [
            ManifestExtra(name=name, options=_filter_options(name))
            for name in definition.filters
        ]
        extra.append(ManifestExtra(name="skip"))
        entries.append(
            ManifestCatalog(type=definition.type, id=definition.id, name=definition.name, extra=extra)
        )
    return Manifest(catalogs=entries)


def skip_to_page(skip: Optional[str], per_page: int) -> int:
    """Stremio sends skip=0, 100, 200 ...; AniList pages start at 1"""
    try:
        offset = int(skip or 0)
    except (TypeError, ValueError):
        offset = 0
    return max(offset, 0) // per_page + 1


def catalog_cache_key(catalog_id: str, page: int, filters: Mapping[str, str]) -> str:
    """catalog:{id}:{page}:{k=v&k=v} with filter keys sorted"""
    extra_key = "&".join(f"{key}={filters[key]}" for key in sorted(filters))
    return f"catalog:{catalog_id}:{page}:{extra_key}"


def cache_hints(ttl: int) -> Dict[str, int]:
    """Stremio client caching hints for a response with the given TTL"""
    return {
        "cacheMaxAge": ttl,
        "staleRevalidate": ttl * 2,
        "staleError": settings.CACHE_STALE_ERROR,
    }


def parse_stremio_id(stremio_id: str) -> Optional[Tuple[str, str]]:
    """Split "kitsu:123" into ("kitsu", "123"); None for anything else"""
    match = _STREMIO_ID_RE.match(stremio_id or "")
    if not match:
        return None
    return match.group(1), match.group(2)


class CatalogService:
    """Cached catalog pages and metas backed by the upstream clients"""

    def __init__(
        self,
        cache: CacheManager,
        anilist: AniListClient,
        resolver: IdResolver,
        fribb_db: OfflineIndex,
        offline_db: OfflineIndex,
        tmdb: TMDBClient,
        kitsu: KitsuClient,
        catalogs: Optional[Dict[str, CatalogDefinition]] = None,
        meta_ttl: Optional[int] = None,
    ):
        self.cache = cache
        self.anilist = anilist
        self.resolver = resolver
        self.fribb_db = fribb_db
        self.offline_db = offline_db
        self.tmdb = tmdb
        self.kitsu = kitsu
        self.catalogs = catalogs if catalogs is not None else default_catalogs()
        self.meta_ttl = meta_ttl or settings.CACHE_TTL_META

    def catalog_ttl(self, catalog_id: str) -> int:
        definition = self.catalogs.get(catalog_id)
        return definition.ttl if definition else 3600

    def build_variables(
        self,
        definition: CatalogDefinition,
        page: int,
        filters: Mapping[str, str],
    ) -> Dict[str, object]:
        """
        Build the AniList variables for a catalog page

        Args:
            definition: Catalog being queried
            page: AniList page number
            filters: Active filters (display values)

        Returns:
            GraphQL variables
        """
        variables: Dict[str, object] = {"page": page, "perPage": self.anilist.per_page}

        if definition.seasonal:
            season, year = current_season()
            variables["season"] = season
            variables["seasonYear"] = year

        if "genre" in filters:
            variables["genre"] = filters["genre"]
        if "format" in filters:
            variables["format"] = FORMAT_MAP.get(filters["format"], filters["format"])
        if "status" in filters:
            variables["status"] = STATUS_MAP.get(filters["status"], filters["status"])
        if "year" in filters:
            try:
                variables["year"] = int(filters["year"])
            except ValueError:
                logger.warning(f"Ignoring non-numeric year filter: {filters['year']!r}")

        return variables

    async def get_catalog_page(
        self,
        catalog_id: str,
        extra: Optional[Mapping[str, str]] = None,
    ) -> List[MetaPreview]:
        """
        Fetch a catalog page - cache first, AniList on miss

        Args:
            catalog_id: Catalog identifier (e.g. "anilist-trending")
            extra: Stremio extras (skip plus any filters)

        Returns:
            Items in AniList order; empty on unknown catalog or upstream failure
        """
        definition = self.catalogs.get(catalog_id)
        if definition is None:
            logger.warning(f"Unknown catalog ID: {catalog_id}")
            return []

        extra = extra or {}
        page = skip_to_page(extra.get("skip"), self.anilist.per_page)
        filters = {
            key: str(value)
            for key, value in extra.items()
            if key in definition.filters and value not in (None, "")
        }
        cache_key = catalog_cache_key(catalog_id, page, filters)

        async def build() -> List[MetaPreview]:
            logger.info(f"catalog cache miss: {cache_key} - querying AniList")
            return await self._fetch_catalog(definition, page, filters)

        try:
            return await self.cache.get_or_fetch(cache_key, definition.ttl, build)
        except UpstreamError as e:
            logger.error(f"catalog {cache_key} failed: {e}")
            return []

    async def _fetch_catalog(
        self,
        definition: CatalogDefinition,
        page: int,
        filters: Mapping[str, str],
    ) -> List[MetaPreview]:
        variables = self.build_variables(definition, page, filters)
        page_data = await self.anilist.query_page(definition.query, variables)

        stremio_ids = await asyncio.gather(
            *(self.resolver.resolve(media) for media in page_data.media)
        )
        return [
            build_meta_preview(media, stremio_id, definition.item_type)
            for media, stremio_id in zip(page_data.media, stremio_ids)
        ]

    def cross_reference(self, prefix: str, value: str) -> Tuple[Optional[int], Optional[str], Optional[str]]:
        """
        Derive (anilist_id, tmdb_id, kitsu_id) for a parsed Stremio ID

        Args:
            prefix: "tmdb", "kitsu" or "anilist"
            value: Numeric ID in that namespace

        Returns:
            Whatever IDs the offline tables and resolved catalog items can supply
        """
        anilist_id: Optional[int] = None
        tmdb_id: Optional[str] = None
        kitsu_id: Optional[str] = None

        if prefix == "anilist":
            anilist_id = int(value)
        elif prefix == "tmdb":
            tmdb_id = value
            anilist_id = self.fribb_db.inverse(value)
        elif prefix == "kitsu":
            kitsu_id = value
            anilist_id = self.offline_db.inverse(value)

        if anilist_id is None:
            # IDs found by the live Kitsu search are only known to the resolver
            anilist_id = self.resolver.anilist_id_for(f"{prefix}:{value}")

        if anilist_id is not None:
            tmdb_id = tmdb_id or self.fribb_db.forward(anilist_id)
            kitsu_id = kitsu_id or self.offline_db.forward(anilist_id)

        return anilist_id, tmdb_id, kitsu_id

    async def get_meta(self, stremio_id: str) -> Optional[MetaDetail]:
        """
        Full meta for a Stremio ID, coalesced and cached

        Args:
            stremio_id: e.g. "anilist:16498", "kitsu:7442", "tmdb:1429"

        Returns:
            MetaDetail, or None for malformed IDs, unknown items and failures
        """
        parsed = parse_stremio_id(stremio_id)
        if parsed is None:
            logger.warning(f"metaHandler: unrecognised ID format: {stremio_id}")
            return None

        cache_key = f"meta:{stremio_id}"

        async def build() -> MetaDetail:
            logger.info(f"meta cache miss: {cache_key}")
            return await self._build_meta(stremio_id, *parsed)

        try:
            return await self.cache.get_or_fetch(cache_key, self.meta_ttl, build)
        except MetaNotFound:
            logger.info(f"meta not found: {stremio_id}")
            return None
        except UpstreamError as e:
            logger.error(f"metaHandler: upstream failure for {stremio_id}: {e}")
            return None

    async def _build_meta(self, stremio_id: str, prefix: str, value: str) -> MetaDetail:
        anilist_id, tmdb_id, kitsu_id = self.cross_reference(prefix, value)

        if tmdb_id and self.tmdb.enabled:
            meta = await self.meta_from_tmdb(stremio_id, int(tmdb_id))
            if meta is not None:
                return meta

        if anilist_id is None:
            raise MetaNotFound(stremio_id)

        media = await self.anilist.query_media(MEDIA_BY_ID_QUERY, {"id": anilist_id})
        if media is None:
            raise MetaNotFound(stremio_id)

        meta = build_full_meta(media, stremio_id)
        if kitsu_id and meta.type == "series":
            episodes = await self.kitsu.fetch_episodes(kitsu_id)
            videos = build_videos_from_kitsu(episodes, stremio_id)
            if videos:
                meta.videos = videos
        return meta

    async def meta_from_tmdb(self, stremio_id: str, tmdb_id: int) -> Optional[MetaDetail]:
        """TMDB series meta with episodes; None when absent or failing"""
        try:
            series, external_ids, credits = await asyncio.gather(
                self.tmdb.get_series(tmdb_id),
                self.tmdb.get_external_ids(tmdb_id),
                self.tmdb.get_aggregate_credits(tmdb_id),
            )
            if series is None:
                return None
            episodes = await self.tmdb.get_all_episodes(tmdb_id, series.number_of_seasons or 1)
        except UpstreamError as e:
            logger.warning(f"TMDB fetch failed for {stremio_id} (tmdbId: {tmdb_id}): {e}")
            return None

        imdb_id = external_ids.imdb_id if external_ids else None
        return build_meta_from_tmdb(series, episodes, stremio_id, imdb_id, credits)
