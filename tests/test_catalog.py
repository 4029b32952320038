"""
Tests for catalog pages and meta assembly
"""
import asyncio
import pytest
from unittest.mock import AsyncMock, patch
from app.core.errors import RetriesExhausted, TransientUpstreamError
from app.models.anilist import Page
from app.models.kitsu import KitsuEpisode
from app.models.tmdb import AggregateCredits, Episode, ExternalIds, Series
from app.services.anilist_queries import ANIME_DISCOVER_QUERY, MEDIA_BY_ID_QUERY, SEASON_QUERY, TRENDING_QUERY
from app.services.catalog import (
    CatalogDefinition,
    build_manifest,
    cache_hints,
    catalog_cache_key,
    default_catalogs,
    parse_stremio_id,
    skip_to_page,
)
from app.services.tmdb import TMDBClient
from tests.conftest import make_media


def page_of(*media):
    return Page(media=list(media))


class TestHelpers:
    """Pure helpers"""

    def test_skip_to_page(self):
        assert skip_to_page(None, 100) == 1
        assert skip_to_page("0", 100) == 1
        assert skip_to_page("100", 100) == 2
        assert skip_to_page("250", 100) == 3
        assert skip_to_page("garbage", 100) == 1
        assert skip_to_page("-100", 100) == 1

    def test_cache_key_sorts_filters(self):
        key = catalog_cache_key("anilist-anime", 1, {"genre": "Action", "format": "TV"})
        assert key == "catalog:anilist-anime:1:format=TV&genre=Action"
        assert catalog_cache_key("anilist-trending", 2, {}) == "catalog:anilist-trending:2:"

    def test_parse_stremio_id(self):
        assert parse_stremio_id("kitsu:7442") == ("kitsu", "7442")
        assert parse_stremio_id("tmdb:1429") == ("tmdb", "1429")
        assert parse_stremio_id("anilist:16498") == ("anilist", "16498")
        assert parse_stremio_id("tt0944947") is None
        assert parse_stremio_id("kitsu:") is None
        assert parse_stremio_id("mal:123") is None

    def test_cache_hints(self):
        assert cache_hints(3600) == {"cacheMaxAge": 3600, "staleRevalidate": 7200, "staleError": 86400}

    def test_manifest_lists_catalogs_with_extras(self, catalog_service):
        manifest = build_manifest(catalog_service.catalogs)
        ids = [catalog.id for catalog in manifest.catalogs]

        assert ids == ["anilist-trending", "anilist-season", "anilist-popular", "anilist-top", "anilist-anime"]
        discover = manifest.catalogs[-1]
        assert discover.type == "anime"
        extras = {extra.name: extra for extra in discover.extra}
        assert set(extras) == {"genre", "format", "status", "year", "skip"}
        assert "Slice of Life" in extras["genre"].options
        assert extras["format"].options == ["TV", "Movie", "OVA", "ONA", "Special"]
        assert extras["year"].options[-1] == "1995"
        assert [extra.name for extra in manifest.catalogs[0].extra] == ["skip"]


class TestCatalogPages:
    """get_catalog_page"""

    @pytest.mark.asyncio
    async def test_trending_page_resolves_ids_in_order(self, catalog_service, anilist_client):
        anilist_client.query_page.return_value = page_of(
            make_media(16498, "Attack on Titan"),
            make_media(1, "Cowboy Bebop"),
            make_media(999010, "Unmapped"),
        )

        metas = await catalog_service.get_catalog_page("anilist-trending", {})

        assert [meta.id for meta in metas] == ["tmdb:1429", "kitsu:1", "anilist:999010"]
        assert [meta.name for meta in metas] == ["Attack on Titan", "Cowboy Bebop", "Unmapped"]
        query, variables = anilist_client.query_page.call_args.args
        assert query is TRENDING_QUERY
        assert variables == {"page": 1, "perPage": 100}

    @pytest.mark.asyncio
    async def test_skip_maps_to_page(self, catalog_service, anilist_client):
        await catalog_service.get_catalog_page("anilist-trending", {"skip": "200"})

        _, variables = anilist_client.query_page.call_args.args
        assert variables["page"] == 3

    @pytest.mark.asyncio
    async def test_season_catalog_sends_current_season(self, catalog_service, anilist_client):
        with patch("app.services.catalog.current_season", return_value=("FALL", 2026)):
            await catalog_service.get_catalog_page("anilist-season", {})

        query, variables = anilist_client.query_page.call_args.args
        assert query is SEASON_QUERY
        assert variables["season"] == "FALL"
        assert variables["seasonYear"] == 2026

    def test_season_variables_follow_the_seasonal_flag(self, catalog_service):
        """Season variables come from the definition, not from which query it uses"""
        seasonal = CatalogDefinition("airing-now", "series", "Airing Now", TRENDING_QUERY, 3600, seasonal=True)
        plain = CatalogDefinition("season-copy", "series", "Season Copy", SEASON_QUERY, 3600)

        with patch("app.services.catalog.current_season", return_value=("WINTER", 2027)):
            seasonal_vars = catalog_service.build_variables(seasonal, 1, {})
            plain_vars = catalog_service.build_variables(plain, 1, {})

        assert (seasonal_vars["season"], seasonal_vars["seasonYear"]) == ("WINTER", 2027)
        assert "season" not in plain_vars
        assert [d.id for d in default_catalogs().values() if d.seasonal] == ["anilist-season"]

    @pytest.mark.asyncio
    async def test_discover_filters_are_mapped(self, catalog_service, anilist_client):
        anilist_client.query_page.return_value = page_of(make_media(1, "Cowboy Bebop"))

        metas = await catalog_service.get_catalog_page(
            "anilist-anime",
            {"genre": "Action", "format": "Movie", "status": "Airing", "year": "2024", "skip": "0"},
        )

        query, variables = anilist_client.query_page.call_args.args
        assert query is ANIME_DISCOVER_QUERY
        assert variables["genre"] == "Action"
        assert variables["format"] == "MOVIE"
        assert variables["status"] == "RELEASING"
        assert variables["year"] == 2024
        assert metas[0].type == "anime"

    @pytest.mark.asyncio
    async def test_filters_ignored_on_catalogs_without_them(self, catalog_service, anilist_client):
        await catalog_service.get_catalog_page("anilist-trending", {"genre": "Action"})

        _, variables = anilist_client.query_page.call_args.args
        assert "genre" not in variables
        assert catalog_service.cache.has("catalog:anilist-trending:1:")

    @pytest.mark.asyncio
    async def test_page_is_cached(self, catalog_service, anilist_client):
        anilist_client.query_page.return_value = page_of(make_media(1, "Cowboy Bebop"))

        first = await catalog_service.get_catalog_page("anilist-trending", {})
        second = await catalog_service.get_catalog_page("anilist-trending", {"skip": "0"})

        assert first == second
        assert anilist_client.query_page.await_count == 1

    @pytest.mark.asyncio
    async def test_expired_page_costs_one_upstream_call(self, catalog_service, anilist_client, clock):
        """3700s after a 1h trending page was cached, two requests make one AniList call"""
        anilist_client.query_page.return_value = page_of(make_media(1, "Cowboy Bebop"))
        await catalog_service.get_catalog_page("anilist-trending", {})

        clock.advance(3700)
        await asyncio.gather(
            catalog_service.get_catalog_page("anilist-trending", {}),
            catalog_service.get_catalog_page("anilist-trending", {}),
        )

        assert anilist_client.query_page.await_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_requests_coalesce(self, catalog_service, anilist_client):
        gate = asyncio.Event()

        async def slow_page(query, variables):
            await gate.wait()
            return page_of(make_media(1, "Cowboy Bebop"))

        anilist_client.query_page.side_effect = slow_page
        tasks = [
            asyncio.create_task(catalog_service.get_catalog_page("anilist-popular", {}))
            for _ in range(5)
        ]
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(*tasks)

        assert all(len(metas) == 1 for metas in results)
        assert anilist_client.query_page.await_count == 1

    @pytest.mark.asyncio
    async def test_unknown_catalog_is_empty(self, catalog_service, anilist_client):
        assert await catalog_service.get_catalog_page("anilist-az", {}) == []
        anilist_client.query_page.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upstream_failure_is_empty_and_not_cached(self, catalog_service, anilist_client):
        anilist_client.query_page.side_effect = RetriesExhausted("AniList API: rate limit exceeded")

        assert await catalog_service.get_catalog_page("anilist-top", {}) == []
        assert not catalog_service.cache.has("catalog:anilist-top:1:")

        anilist_client.query_page.side_effect = None
        anilist_client.query_page.return_value = page_of(make_media(1, "Cowboy Bebop"))
        assert len(await catalog_service.get_catalog_page("anilist-top", {})) == 1


class TestCrossReference:
    """Deriving AniList, TMDB and Kitsu IDs from a Stremio ID"""

    def test_from_tmdb(self, catalog_service):
        assert catalog_service.cross_reference("tmdb", "1429") == (16498, "1429", "7442")

    def test_from_kitsu(self, catalog_service):
        assert catalog_service.cross_reference("kitsu", "7442") == (16498, "1429", "7442")

    def test_from_anilist(self, catalog_service):
        assert catalog_service.cross_reference("anilist", "1") == (1, None, "1")

    def test_unknown_kitsu_id(self, catalog_service):
        assert catalog_service.cross_reference("kitsu", "46474") == (None, None, "46474")

    @pytest.mark.asyncio
    async def test_kitsu_id_from_live_search(self, catalog_service, kitsu_client):
        kitsu_client.search_id.return_value = "46474"
        await catalog_service.resolver.resolve(make_media(170942, "Blue Box"))

        assert catalog_service.cross_reference("kitsu", "46474") == (170942, None, "46474")


class TestMeta:
    """get_meta"""

    @pytest.mark.asyncio
    async def test_malformed_id_is_none(self, catalog_service, anilist_client):
        assert await catalog_service.get_meta("tt0944947") is None
        anilist_client.query_media.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_anilist_fallback_with_kitsu_episodes(self, catalog_service, anilist_client, kitsu_client, sample_media):
        anilist_client.query_media.return_value = sample_media
        kitsu_client.fetch_episodes.return_value = [
            KitsuEpisode.model_validate({"number": 1, "canonicalTitle": "To You, in 2000 Years", "airdate": "2013-04-07"}),
            KitsuEpisode.model_validate({"number": 2, "canonicalTitle": "That Day"}),
        ]

        meta = await catalog_service.get_meta("kitsu:7442")

        assert meta.id == "kitsu:7442"
        assert meta.name == "Attack on Titan"
        assert [video.id for video in meta.videos] == ["kitsu:7442:1:1", "kitsu:7442:1:2"]
        anilist_client.query_media.assert_awaited_once_with(MEDIA_BY_ID_QUERY, {"id": 16498})
        kitsu_client.fetch_episodes.assert_awaited_once_with("7442")

    @pytest.mark.asyncio
    async def test_anilist_id_without_kitsu_has_no_videos(self, catalog_service, anilist_client):
        anilist_client.query_media.return_value = make_media(999020, "Lonely Show")

        meta = await catalog_service.get_meta("anilist:999020")

        assert meta.name == "Lonely Show"
        assert meta.videos is None

    @pytest.mark.asyncio
    async def test_unknown_kitsu_id_is_none(self, catalog_service, anilist_client):
        assert await catalog_service.get_meta("kitsu:46474") is None
        anilist_client.query_media.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_search_resolved_catalog_item_has_meta(self, catalog_service, anilist_client, kitsu_client):
        """An item mapped by the live Kitsu search is served from its AniList record"""
        blue_box = make_media(170942, "Blue Box")
        anilist_client.query_page.return_value = page_of(blue_box)
        anilist_client.query_media.return_value = blue_box
        kitsu_client.search_id.return_value = "46474"
        kitsu_client.fetch_episodes.return_value = [KitsuEpisode.model_validate({"number": 1})]

        items = await catalog_service.get_catalog_page("anilist-trending", {})
        assert items[0].id == "kitsu:46474"

        meta = await catalog_service.get_meta(items[0].id)

        assert meta.id == "kitsu:46474"
        assert meta.name == "Blue Box"
        assert [video.id for video in meta.videos] == ["kitsu:46474:1:1"]
        anilist_client.query_media.assert_awaited_once_with(MEDIA_BY_ID_QUERY, {"id": 170942})
        kitsu_client.fetch_episodes.assert_awaited_once_with("46474")

    @pytest.mark.asyncio
    async def test_missing_media_is_none_and_not_cached(self, catalog_service, anilist_client):
        anilist_client.query_media.return_value = None

        assert await catalog_service.get_meta("anilist:424242") is None
        assert not catalog_service.cache.has("meta:anilist:424242")

    @pytest.mark.asyncio
    async def test_upstream_failure_is_none(self, catalog_service, anilist_client):
        anilist_client.query_media.side_effect = TransientUpstreamError("AniList API error 502", status=502)

        assert await catalog_service.get_meta("anilist:16498") is None

    @pytest.mark.asyncio
    async def test_meta_is_cached(self, catalog_service, anilist_client, sample_media):
        anilist_client.query_media.return_value = sample_media

        await catalog_service.get_meta("anilist:16498")
        await catalog_service.get_meta("anilist:16498")

        assert anilist_client.query_media.await_count == 1


class TestTmdbMeta:
    """TMDB-first meta assembly"""

    @pytest.fixture
    def tmdb_client(self, catalog_service):
        tmdb = TMDBClient(api_key="test-key", base_url="http://tmdb.test/3")
        tmdb.get_series = AsyncMock(return_value=Series.model_validate({
            "id": 1429,
            "name": "Attack on Titan",
            "overview": "Humanity fights titans.",
            "poster_path": "/poster.jpg",
            "number_of_seasons": 1,
            "status": "Ended",
            "first_air_date": "2013-04-07",
            "last_air_date": "2023-11-05",
        }))
        tmdb.get_external_ids = AsyncMock(return_value=ExternalIds(imdb_id="tt2560140"))
        tmdb.get_aggregate_credits = AsyncMock(return_value=AggregateCredits.model_validate(
            {"cast": [{"name": "Yuki Kaji"}, {"name": "Yui Ishikawa"}]}
        ))
        tmdb.get_all_episodes = AsyncMock(return_value=[
            Episode(episode_number=1, season_number=1, name="To You, in 2000 Years", air_date="2013-04-07"),
            Episode(episode_number=1, season_number=0, name="Ilse's Notebook"),
        ])
        catalog_service.tmdb = tmdb
        return tmdb

    @pytest.mark.asyncio
    async def test_tmdb_meta_for_tmdb_id(self, catalog_service, tmdb_client, anilist_client):
        meta = await catalog_service.get_meta("tmdb:1429")

        assert meta.id == "tmdb:1429"
        assert meta.imdbId == "tt2560140"
        assert meta.cast == ["Yuki Kaji", "Yui Ishikawa"]
        assert meta.releaseInfo == "2013-2023"
        assert [video.id for video in meta.videos] == ["tt2560140:1:1", "tt2560140:0:1"]
        tmdb_client.get_all_episodes.assert_awaited_once_with(1429, 1)
        anilist_client.query_media.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_tmdb_used_for_kitsu_id_with_fribb_mapping(self, catalog_service, tmdb_client):
        meta = await catalog_service.get_meta("kitsu:7442")

        assert meta.id == "kitsu:7442"
        tmdb_client.get_series.assert_awaited_once_with(1429)

    @pytest.mark.asyncio
    async def test_tmdb_failure_falls_back_to_anilist(self, catalog_service, tmdb_client, anilist_client, sample_media):
        tmdb_client.get_series.side_effect = TransientUpstreamError("TMDB /tv/1429 returned 503", status=503)
        anilist_client.query_media.return_value = sample_media

        meta = await catalog_service.get_meta("tmdb:1429")

        assert meta.name == "Attack on Titan"
        assert meta.imdbId is None
        anilist_client.query_media.assert_awaited_once_with(MEDIA_BY_ID_QUERY, {"id": 16498})

    @pytest.mark.asyncio
    async def test_tmdb_404_falls_back_to_anilist(self, catalog_service, tmdb_client, anilist_client, sample_media):
        tmdb_client.get_series.return_value = None
        anilist_client.query_media.return_value = sample_media

        meta = await catalog_service.get_meta("anilist:16498")

        assert meta.id == "anilist:16498"
        assert meta.status == "Ended"

    @pytest.mark.asyncio
    async def test_unmapped_tmdb_id_with_tmdb_failure_is_none(self, catalog_service, tmdb_client):
        tmdb_client.get_series.return_value = None

        assert await catalog_service.get_meta("tmdb:5555") is None
