"""
Test configuration and fixtures
"""
import pytest
from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock
from app.models.anilist import Media, Page
from app.services.anilist import AniListClient
from app.services.cache import CacheManager
from app.services.catalog import CatalogService
from app.services.id_mapper import IdResolver
from app.services.kitsu import KitsuClient
from app.services.offline_db import AnimeOfflineDatabase, FribbDatabase
from app.services.tmdb import TMDBClient


class FakeClock:
    """Manually advanced clock for TTL and quota tests"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records requested delays and returns at once"""

    def __init__(self, clock: FakeClock = None):
        self.calls: List[float] = []
        self.clock = clock

    async def __call__(self, seconds: float):
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


def make_media(anilist_id: int, english: str = None, romaji: str = None, **fields: Any) -> Media:
    """Build an AniList Media from camelCase fields as the API returns them"""
    payload: Dict[str, Any] = {
        "id": anilist_id,
        "title": {"english": english, "romaji": romaji or f"Title {anilist_id}", "native": None},
        "format": "TV",
    }
    payload.update(fields)
    return Media.model_validate(payload)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep_recorder():
    return RecordingSleep()


@pytest.fixture
def sample_media_payload():
    """Sample AniList media (Attack on Titan)"""
    return {
        "id": 16498,
        "title": {
            "romaji": "Shingeki no Kyojin",
            "english": "Attack on Titan",
            "native": "進撃の巨人",
        },
        "coverImage": {
            "extraLarge": "https://s4.anilist.co/file/anilistcdn/media/anime/cover/large/bx16498.jpg",
            "large": "https://s4.anilist.co/file/anilistcdn/media/anime/cover/medium/bx16498.jpg",
        },
        "bannerImage": "https://s4.anilist.co/file/anilistcdn/media/anime/banner/16498.jpg",
        "description": "Several hundred years ago, humans were nearly exterminated by titans.<br><br>Titans are <i>typically</i> several stories tall &amp; seem to have no intelligence.",
        "genres": ["Action", "Drama", "Fantasy", "Mystery"],
        "format": "TV",
        "status": "FINISHED",
        "episodes": 25,
        "duration": 24,
        "season": "SPRING",
        "seasonYear": 2013,
        "averageScore": 85,
        "popularity": 900000,
        "studios": {"nodes": [{"name": "Wit Studio", "siteUrl": "https://anilist.co/studio/858"}]},
        "trailer": {"id": "LHtdKWJdif4", "site": "youtube"},
        "siteUrl": "https://anilist.co/anime/16498",
        "startDate": {"year": 2013, "month": 4, "day": 7},
        "endDate": {"year": 2013, "month": 9, "day": 29},
    }


@pytest.fixture
def sample_media(sample_media_payload):
    return Media.model_validate(sample_media_payload)


@pytest.fixture
def fribb_db(tmp_path):
    """Fribb table with Attack on Titan mapped to TMDB 1429"""
    db = FribbDatabase(url="http://test/fribb.json", path=tmp_path / "anime-list-full.json")
    db.install(db.parse([
        {"anilist_id": 16498, "themoviedb_id": 1429, "type": "TV"},
        {"anilist_id": 20958, "themoviedb_id": 1429, "type": "TV"},
        {"anilist_id": 21519, "themoviedb_id": 372058, "type": "MOVIE"},
    ]))
    return db


@pytest.fixture
def offline_db(tmp_path):
    """Offline DB table with two AniList <-> Kitsu mappings"""
    db = AnimeOfflineDatabase(url="http://test/offline.json", path=tmp_path / "anime-offline-database.json")
    db.install(db.parse({"data": [
        {"sources": ["https://anilist.co/anime/16498", "https://kitsu.app/anime/7442"]},
        {"sources": ["https://anilist.co/anime/1", "https://kitsu.io/anime/1"]},
    ]}))
    return db


@pytest.fixture
def kitsu_client():
    kitsu = KitsuClient(base_url="http://kitsu.test/api/edge")
    kitsu.search_id = AsyncMock(return_value=None)
    kitsu.fetch_episodes = AsyncMock(return_value=[])
    return kitsu


@pytest.fixture
def anilist_client():
    client = MagicMock(spec=AniListClient)
    client.per_page = 100
    client.query_page = AsyncMock(return_value=Page())
    client.query_media = AsyncMock(return_value=None)
    return client


@pytest.fixture
def tmdb_disabled():
    return TMDBClient(api_key="", base_url="http://tmdb.test/3")


@pytest.fixture
def catalog_service(clock, anilist_client, fribb_db, offline_db, kitsu_client, tmdb_disabled):
    """CatalogService over stubbed upstreams and a fake-clock cache"""
    cache = CacheManager(clock=clock)
    resolver = IdResolver(fribb_db, offline_db, kitsu_client)
    return CatalogService(cache, anilist_client, resolver, fribb_db, offline_db, tmdb_disabled, kitsu_client)
