"""
Addon State
Process-wide service container, built once at startup and injected into endpoints
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from fastapi import Request
from app.core.config import settings
from app.core.errors import SnapshotUnavailable
from app.services.anilist import AniListClient
from app.services.background import BackgroundTaskManager
from app.services.cache import CacheManager
from app.services.catalog import CatalogService
from app.services.id_mapper import IdResolver
from app.services.kitsu import KitsuClient
from app.services.offline_db import AnimeOfflineDatabase, FribbDatabase, OfflineIndex
from app.services.tmdb import TMDBClient
from app.utils.query_queue import GraphQLQueryQueue

logger = logging.getLogger(__name__)


@dataclass
class AddonState:
    """
    Container for the addon's shared runtime objects

    Attributes:
        cache: Process-local TTL cache for catalog pages and metas
        queue: The single AniList query queue
        anilist: Typed AniList client on top of the queue
        tmdb: TMDB client (disabled without an API key)
        kitsu: Kitsu client
        fribb_db: AniList -> TMDB table
        offline_db: AniList -> Kitsu table
        resolver: AniList -> Stremio ID resolver
        catalogs: Catalog and meta orchestrator
        tasks: Periodic job scheduler
    """

    cache: CacheManager
    queue: GraphQLQueryQueue
    anilist: AniListClient
    tmdb: TMDBClient
    kitsu: KitsuClient
    fribb_db: OfflineIndex
    offline_db: OfflineIndex
    resolver: IdResolver
    catalogs: CatalogService
    tasks: BackgroundTaskManager

    @classmethod
    def build(cls) -> "AddonState":
        """Wire every service from settings"""
        cache = CacheManager()
        queue = GraphQLQueryQueue(
            settings.ANILIST_URL,
            max_attempts=settings.ANILIST_MAX_ATTEMPTS,
            min_retry_after=settings.ANILIST_MIN_RETRY_AFTER,
            server_error_backoff=settings.ANILIST_SERVER_ERROR_BACKOFF,
            low_water_mark=settings.ANILIST_LOW_WATER_MARK,
            reset_buffer=settings.ANILIST_RESET_BUFFER,
            timeout=settings.ANILIST_TIMEOUT,
        )
        anilist = AniListClient(queue)
        tmdb = TMDBClient()
        kitsu = KitsuClient()
        fribb_db = FribbDatabase()
        offline_db = AnimeOfflineDatabase()
        resolver = IdResolver(fribb_db, offline_db, kitsu)
        catalogs = CatalogService(cache, anilist, resolver, fribb_db, offline_db, tmdb, kitsu)
        return cls(
            cache=cache,
            queue=queue,
            anilist=anilist,
            tmdb=tmdb,
            kitsu=kitsu,
            fribb_db=fribb_db,
            offline_db=offline_db,
            resolver=resolver,
            catalogs=catalogs,
            tasks=BackgroundTaskManager(),
        )

    async def load_tables(self):
        """
        Load both offline tables concurrently

        A table that cannot be loaded stays empty; resolution then falls
        through to the Kitsu search and the anilist: fallback.
        """
        results = await asyncio.gather(
            self.fribb_db.load(),
            self.offline_db.load(),
            return_exceptions=True,
        )
        for table, result in zip((self.fribb_db, self.offline_db), results):
            if isinstance(result, SnapshotUnavailable):
                logger.error(f"{table.name} unavailable, running degraded: {result}")
            elif isinstance(result, BaseException):
                raise result

    async def close(self):
        """Stop the scheduler and close every HTTP session"""
        await self.tasks.stop()
        await self.anilist.close()
        await self.tmdb.close()
        await self.kitsu.close()

    def get_health_status(self) -> Dict[str, Any]:
        """
        Health summary of the cache, tables and resolver

        Returns:
            Dictionary for the /health endpoint
        """
        tables = {
            table.name: {"loaded": table.loaded, "entries": table.size}
            for table in (self.fribb_db, self.offline_db)
        }
        degraded = not all(table["loaded"] for table in tables.values())
        return {
            "status": "degraded" if degraded else "healthy",
            "version": "1.0.0",
            "base_url": settings.BASE_URL,
            "cache": {
                "entries": self.cache.size,
                "pending": self.cache.pending_count,
                "metrics": self.cache.get_metrics_snapshot(),
            },
            "tables": tables,
            "tmdb_configured": self.tmdb.enabled,
            "resolver": {
                "memoized": self.resolver.memo_size,
                "negative": self.resolver.negative_size,
            },
            "anilist_queue": self.queue.queued,
        }


def get_state(request: Request) -> AddonState:
    """FastAPI dependency returning the AddonState built in the lifespan"""
    state: Optional[AddonState] = getattr(request.app.state, "addon", None)
    if state is None:
        raise RuntimeError("AddonState not initialized")
    return state
