"""
Tests for the offline ID databases
"""
import json
import os
import pytest
from unittest.mock import AsyncMock, patch
from app.core.errors import SnapshotUnavailable, TransientUpstreamError
from app.services.offline_db import AnimeOfflineDatabase, FribbDatabase
from tests.conftest import FakeClock

FRIBB_SNAPSHOT = [
    {"anilist_id": 16498, "themoviedb_id": 1429, "type": "TV", "kitsu_id": 7442},
    {"anilist_id": 20958, "themoviedb_id": 1429, "type": "TV"},
    {"anilist_id": 21519, "themoviedb_id": 372058, "type": "MOVIE"},
    {"anilist_id": 1, "themoviedb_id": 30991},
    {"anilist_id": 1, "themoviedb_id": 99999},
    {"anilist_id": None, "themoviedb_id": 5},
    {"anilist_id": 5, "themoviedb_id": None},
    {"anilist_id": "not-a-number", "themoviedb_id": 7},
    "garbage",
]

OFFLINE_SNAPSHOT = {
    "data": [
        {"title": "Shingeki no Kyojin", "sources": [
            "https://anidb.net/anime/9541",
            "https://anilist.co/anime/16498",
            "https://kitsu.app/anime/7442",
        ]},
        {"title": "Cowboy Bebop", "sources": [
            "https://anilist.co/anime/1",
            "https://kitsu.io/anime/1",
        ]},
        {"title": "AniList only", "sources": ["https://anilist.co/anime/555"]},
        {"title": "No sources"},
    ]
}


class TestFribbDatabase:
    """AniList -> TMDB table"""

    def test_forward_and_inverse(self, tmp_path):
        db = FribbDatabase(url="http://test", path=tmp_path / "fribb.json")
        db.install(db.parse(FRIBB_SNAPSHOT))

        assert db.forward(16498) == "1429"
        assert db.forward("16498") == "1429"
        assert db.inverse("1429") == 16498
        assert db.inverse(1429) == 16498

    def test_first_occurrence_wins(self, tmp_path):
        """Duplicate canonical and secondary IDs keep their first mapping"""
        db = FribbDatabase(url="http://test", path=tmp_path / "fribb.json")
        db.install(db.parse(FRIBB_SNAPSHOT))

        assert db.forward(1) == "30991"
        # Each direction keeps its own first occurrence
        assert db.inverse("99999") == 1
        assert db.inverse("1429") == 16498
        assert db.forward(20958) == "1429"

    def test_movies_and_incomplete_entries_are_skipped(self, tmp_path):
        db = FribbDatabase(url="http://test", path=tmp_path / "fribb.json")
        db.install(db.parse(FRIBB_SNAPSHOT))

        assert db.forward(21519) is None
        assert db.inverse("372058") is None
        assert db.forward(5) is None
        assert db.inverse("5") is None
        assert db.inverse("7") is None
        assert db.size == 3

    def test_invalid_lookups_return_none(self, tmp_path):
        db = FribbDatabase(url="http://test", path=tmp_path / "fribb.json")
        db.install(db.parse(FRIBB_SNAPSHOT))

        assert db.forward(None) is None
        assert db.forward(-1) is None
        assert db.forward("abc") is None
        assert db.inverse("") is None
        assert db.inverse(None) is None

    def test_empty_before_load(self, tmp_path):
        db = FribbDatabase(url="http://test", path=tmp_path / "fribb.json")

        assert db.loaded is False
        assert db.size == 0
        assert db.forward(16498) is None


class TestAnimeOfflineDatabase:
    """AniList -> Kitsu table parsed from source URLs"""

    def test_source_urls_are_parsed(self, tmp_path):
        db = AnimeOfflineDatabase(url="http://test", path=tmp_path / "offline.json")
        db.install(db.parse(OFFLINE_SNAPSHOT))

        assert db.forward(16498) == "7442"
        assert db.forward(1) == "1"
        assert db.inverse("7442") == 16498
        assert db.forward(555) is None
        assert db.size == 2

    def test_unexpected_shape_yields_empty_table(self, tmp_path):
        db = AnimeOfflineDatabase(url="http://test", path=tmp_path / "offline.json")
        db.install(db.parse({"data": "nope"}))

        assert db.loaded is True
        assert db.size == 0


class TestLoading:
    """Disk freshness, download and stale fallback"""

    @pytest.mark.asyncio
    async def test_fresh_disk_snapshot_skips_download(self, tmp_path):
        path = tmp_path / "fribb.json"
        path.write_text(json.dumps(FRIBB_SNAPSHOT))
        clock = FakeClock(path.stat().st_mtime + 3600)
        db = FribbDatabase(url="http://test", path=path, clock=clock)

        with patch.object(db, "_fetch_text", AsyncMock()) as fetch:
            await db.load()

        fetch.assert_not_awaited()
        assert db.loaded
        assert db.forward(16498) == "1429"

    @pytest.mark.asyncio
    async def test_old_disk_snapshot_is_redownloaded_and_persisted(self, tmp_path):
        path = tmp_path / "fribb.json"
        path.write_text(json.dumps([{"anilist_id": 1, "themoviedb_id": 2}]))
        clock = FakeClock(path.stat().st_mtime + 8 * 86400)
        db = FribbDatabase(url="http://test", path=path, clock=clock)

        with patch.object(db, "_fetch_text", AsyncMock(return_value=json.dumps(FRIBB_SNAPSHOT))) as fetch:
            await db.load()

        fetch.assert_awaited_once()
        assert db.forward(16498) == "1429"
        assert json.loads(path.read_text()) == FRIBB_SNAPSHOT
        assert not (tmp_path / "fribb.json.tmp").exists()

    @pytest.mark.asyncio
    async def test_missing_snapshot_is_downloaded(self, tmp_path):
        path = tmp_path / "data" / "offline.json"
        db = AnimeOfflineDatabase(url="http://test", path=path)

        with patch.object(db, "_fetch_text", AsyncMock(return_value=json.dumps(OFFLINE_SNAPSHOT))):
            await db.load()

        assert db.forward(16498) == "7442"
        assert path.exists()

    @pytest.mark.asyncio
    async def test_download_failure_falls_back_to_stale_snapshot(self, tmp_path):
        path = tmp_path / "fribb.json"
        path.write_text(json.dumps(FRIBB_SNAPSHOT))
        clock = FakeClock(path.stat().st_mtime + 30 * 86400)
        db = FribbDatabase(url="http://test", path=path, clock=clock)

        with patch.object(db, "_fetch_text", AsyncMock(side_effect=TransientUpstreamError("timeout"))):
            await db.load()

        assert db.loaded
        assert db.forward(16498) == "1429"

    @pytest.mark.asyncio
    async def test_download_failure_without_snapshot_raises(self, tmp_path):
        db = FribbDatabase(url="http://test", path=tmp_path / "fribb.json")

        with patch.object(db, "_fetch_text", AsyncMock(side_effect=TransientUpstreamError("timeout"))):
            with pytest.raises(SnapshotUnavailable):
                await db.load()

        assert db.loaded is False
        assert db.forward(16498) is None

    @pytest.mark.asyncio
    async def test_corrupt_download_without_snapshot_raises(self, tmp_path):
        db = FribbDatabase(url="http://test", path=tmp_path / "fribb.json")

        with patch.object(db, "_fetch_text", AsyncMock(return_value="{not json")):
            with pytest.raises(SnapshotUnavailable):
                await db.load()


class TestRefresh:
    """Atomic table replacement"""

    @pytest.mark.asyncio
    async def test_refresh_swaps_tables(self, tmp_path):
        db = FribbDatabase(url="http://test", path=tmp_path / "fribb.json")
        db.install(db.parse([{"anilist_id": 1, "themoviedb_id": 10}]))
        replacement = [{"anilist_id": 2, "themoviedb_id": 20}]

        with patch.object(db, "_fetch_text", AsyncMock(return_value=json.dumps(replacement))):
            assert await db.refresh() is True

        assert db.forward(1) is None
        assert db.forward(2) == "20"
        assert db.inverse("20") == 2

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_old_tables(self, tmp_path):
        db = FribbDatabase(url="http://test", path=tmp_path / "fribb.json")
        db.install(db.parse([{"anilist_id": 1, "themoviedb_id": 10}]))

        with patch.object(db, "_fetch_text", AsyncMock(side_effect=TransientUpstreamError("503"))):
            assert await db.refresh() is False

        assert db.forward(1) == "10"

    @pytest.mark.asyncio
    async def test_persist_failure_still_installs(self, tmp_path):
        db = FribbDatabase(url="http://test", path=tmp_path / "fribb.json")

        with patch.object(db, "_fetch_text", AsyncMock(return_value=json.dumps(FRIBB_SNAPSHOT))), \
                patch.object(db, "_persist", side_effect=OSError("read-only")):
            assert await db.refresh() is True

        assert db.forward(16498) == "1429"
        assert not os.path.exists(tmp_path / "fribb.json")
