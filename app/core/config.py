"""
Configuration Management
Loads and validates environment variables
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )
    BASE_URL: str = "http://localhost:7070"
    PORT: int = 7070

    # API Keys (TMDB is optional - meta falls back to AniList + Kitsu)
    TMDB_API_KEY: Optional[str] = None

    # Upstream endpoints
    ANILIST_URL: str = "https://graphql.anilist.co"
    KITSU_URL: str = "https://kitsu.app/api/edge"
    TMDB_URL: str = "https://api.themoviedb.org/3"

    # Offline ID databases
    DATA_DIR: str = "data"
    OFFLINE_DB_URL: str = (
        "https://github.com/manami-project/anime-offline-database/releases/latest/download/"
        "anime-offline-database-minified.json"
    )
    FRIBB_DB_URL: str = "https://raw.githubusercontent.com/Fribb/anime-lists/master/anime-list-full.json"
    SNAPSHOT_MAX_AGE_DAYS: int = 7
    SNAPSHOT_DOWNLOAD_TIMEOUT: int = 120

    # Cache TTLs (seconds)
    CACHE_TTL_TRENDING: int = 3600  # 1 hour
    CACHE_TTL_SEASON: int = 21600  # 6 hours
    CACHE_TTL_POPULAR: int = 43200  # 12 hours
    CACHE_TTL_TOP: int = 86400  # 24 hours
    CACHE_TTL_DISCOVER: int = 21600  # 6 hours
    CACHE_TTL_META: int = 86400  # 24 hours
    CACHE_STALE_ERROR: int = 86400

    # Background Tasks
    PREWARM_TRENDING_INTERVAL_HOURS: float = 1
    PREWARM_SEASON_INTERVAL_HOURS: float = 6
    OFFLINE_DB_REFRESH_HOURS: float = 24
    FRIBB_DB_REFRESH_HOURS: float = 168  # matches the freshness window
    CACHE_EVICT_INTERVAL_MINUTES: float = 30
    ENABLE_BACKGROUND_TASKS: bool = True

    # AniList rate limiting (~90 req/min upstream)
    ANILIST_PER_PAGE: int = 100
    ANILIST_MAX_ATTEMPTS: int = 3
    ANILIST_MIN_RETRY_AFTER: int = 60  # floor for 429 waits
    ANILIST_SERVER_ERROR_BACKOFF: int = 10  # multiplied by attempt number
    ANILIST_LOW_WATER_MARK: int = 10  # remaining quota that triggers a proactive wait
    ANILIST_RESET_BUFFER: float = 1.0
    ANILIST_TIMEOUT: int = 30

    # Other upstream limits (requests per second)
    TMDB_RATE_LIMIT: int = 40
    TMDB_SEASON_DELAY: float = 0.15
    KITSU_EPISODE_PAGE_LIMIT: int = 20
    KITSU_MAX_EPISODE_PAGES: int = 50

    # Static build
    DIST_DIR: str = "dist"
    BUILD_PAGES: int = 3  # pages per home catalog (100 items/page)
    BUILD_PAGE_DELAY: float = 0.8  # ~75 req/min, inside the AniList limit
    BUILD_FIRST_YEAR: int = 1995
    BUILD_FILTER_COMBOS: bool = True

    # Development
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"


settings = Settings()
