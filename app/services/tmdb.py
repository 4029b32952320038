"""
TMDB API Client
Async client for The Movie Database TV endpoints
"""
import aiohttp
import asyncio
import logging
from typing import List, Dict, Optional, Any
from pydantic import ValidationError
from app.core.config import settings
from app.core.errors import TransientUpstreamError, UpstreamError, UpstreamRejected
from app.models.tmdb import AggregateCredits, Episode, ExternalIds, Season, Series
from app.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class TMDBClient:
    """Async client for TMDB API"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.TMDB_API_KEY
        self.base_url = (base_url or settings.TMDB_URL).rstrip("/")
        self.rate_limiter = rate_limiter or RateLimiter("tmdb", settings.TMDB_RATE_LIMIT)
        self.session: Optional[aiohttp.ClientSession] = None

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

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

    async def _request(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Make API request to TMDB with light retry.

        Returns:
            Parsed JSON, or None on 404

        Raises:
            UpstreamRejected: missing key or a non-retryable status
            TransientUpstreamError: 429/5xx/network failure after retries
        """
        if not self.api_key:
            raise UpstreamRejected("TMDB API key not configured")

        await self.rate_limiter.acquire()

        backoff = 0.5
        attempts = 2
        url = f"{self.base_url}{endpoint}"
        request_params = {"api_key": self.api_key, "language": "en-US"}
        if params:
            request_params.update(params)

        last_error: Optional[UpstreamError] = None
        for attempt in range(attempts):
            try:
                session = await self.get_session()
                async with session.get(url, params=request_params) as response:
                    if response.status == 200:
                        return await response.json()
                    if response.status == 404:
                        logger.debug("TMDB 404 for %s", endpoint)
                        return None
                    if response.status == 429 or 500 <= response.status < 600:
                        last_error = TransientUpstreamError(
                            f"TMDB {endpoint} returned {response.status}",
                            status=response.status,
                        )
                    else:
                        body = await response.text()
                        raise UpstreamRejected(
                            f"TMDB {endpoint} returned {response.status}",
                            status=response.status,
                            body=body,
                        )
            except asyncio.TimeoutError:
                last_error = TransientUpstreamError(f"TMDB request timeout: {endpoint}")
            except aiohttp.ClientError as e:
                last_error = TransientUpstreamError(f"TMDB request error for {endpoint}: {e}")

            if attempt + 1 < attempts:
                await asyncio.sleep(backoff * (attempt + 1))

        raise last_error

    async def get_series(self, tmdb_id: int) -> Optional[Series]:
        """
        Get TV series details with videos appended

        Args:
            tmdb_id: TMDB TV ID

        Returns:
            Series or None if TMDB does not know the ID
        """
        response = await self._request(f"/tv/{tmdb_id}", {"append_to_response": "videos"})
        if response is None:
            return None
        try:
            return Series.model_validate(response)
        except ValidationError as exc:
            raise UpstreamRejected(f"TMDB /tv/{tmdb_id} has an unexpected shape: {exc}") from exc

    async def get_season(self, tmdb_id: int, season_number: int) -> Optional[Season]:
        """Get one season's episode list; None on 404"""
        response = await self._request(f"/tv/{tmdb_id}/season/{season_number}")
        if response is None:
            return None
        try:
            return Season.model_validate(response)
        except ValidationError as exc:
            raise UpstreamRejected(
                f"TMDB season {season_number} for {tmdb_id} has an unexpected shape: {exc}"
            ) from exc

    async def get_all_episodes(self, tmdb_id: int, num_seasons: int) -> List[Episode]:
        """
        Fetch every season and return a flat episode list

        Regular seasons come first; season 0 (specials) is appended last so
        Stremio lists it below the regular seasons.

        Args:
            tmdb_id: TMDB TV ID
            num_seasons: series.number_of_seasons

        Returns:
            Flat list of episodes tagged with their season number
        """
        episodes: List[Episode] = []

        for season_number in list(range(1, num_seasons + 1)) + [0]:
            season = await self.get_season(tmdb_id, season_number)
            if season and season.episodes:
                for ep in season.episodes:
                    episodes.append(ep.model_copy(update={"season_number": season_number}))
                await asyncio.sleep(settings.TMDB_SEASON_DELAY)

        return episodes

    async def get_external_ids(self, tmdb_id: int) -> Optional[ExternalIds]:
        """External IDs (IMDB, TVDB); None on any failure"""
        try:
            response = await self._request(f"/tv/{tmdb_id}/external_ids")
            return ExternalIds.model_validate(response) if response else None
        except (UpstreamError, ValidationError) as e:
            logger.debug(f"TMDB external ids failed for {tmdb_id}: {e}")
            return None

    async def get_aggregate_credits(self, tmdb_id: int) -> Optional[AggregateCredits]:
        """
        Aggregate cast across all episodes; None on any failure

        This endpoint cannot be combined through append_to_response.
        """
        try:
            response = await self._request(f"/tv/{tmdb_id}/aggregate_credits")
            return AggregateCredits.model_validate(response) if response else None
        except (UpstreamError, ValidationError) as e:
            logger.debug(f"TMDB aggregate credits failed for {tmdb_id}: {e}")
            return None
