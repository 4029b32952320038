"""
Offline ID Databases
Bulk AniList cross-reference tables loaded from downloaded snapshots
"""
import aiohttp
import asyncio
import json
import logging
import os
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional, Tuple
from app.core.config import settings
from app.core.errors import SnapshotUnavailable, TransientUpstreamError, UpstreamError, UpstreamRejected

logger = logging.getLogger(__name__)

Pair = Tuple[Any, Any]


@dataclass(frozen=True)
class _Tables:
    forward: Dict[int, str] = field(default_factory=dict)
    inverse: Dict[str, int] = field(default_factory=dict)


def _canonical(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _secondary(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (bool, dict, list)):
        return None
    text = str(value).strip()
    return text or None


class OfflineIndex:
    """
    Bidirectional canonical (AniList) <-> secondary ID table.

    The snapshot is read from disk when younger than the freshness window,
    otherwise downloaded and persisted. Parsing builds new dicts which are
    swapped in as one reference, so readers never see a half-built table.
    When an ID appears more than once the first occurrence wins.
    """

    name = "offline-index"

    def __init__(
        self,
        url: str,
        path: Path,
        max_age_days: Optional[float] = None,
        download_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.url = url
        self.path = Path(path)
        self.max_age_seconds = (
            max_age_days if max_age_days is not None else settings.SNAPSHOT_MAX_AGE_DAYS
        ) * 86400
        self.download_timeout = download_timeout or settings.SNAPSHOT_DOWNLOAD_TIMEOUT
        self._clock = clock
        self._tables = _Tables()
        self.loaded = False
        self.loaded_at: Optional[float] = None

    @property
    def size(self) -> int:
        return len(self._tables.forward)

    def forward(self, canonical_id: Any) -> Optional[str]:
        """Canonical AniList ID -> secondary ID, or None"""
        key = _canonical(canonical_id)
        if key is None:
            return None
        return self._tables.forward.get(key)

    def inverse(self, secondary_id: Any) -> Optional[int]:
        """Secondary ID -> canonical AniList ID, or None"""
        key = _secondary(secondary_id)
        if key is None:
            return None
        return self._tables.inverse.get(key)

    def iter_pairs(self, snapshot: Any) -> Iterable[Pair]:
        """Yield raw (canonical, secondary) pairs from a parsed snapshot"""
        raise NotImplementedError

    def parse(self, snapshot: Any) -> _Tables:
        """
        Build fresh forward and inverse maps from a snapshot in one pass

        Entries missing either side are skipped, malformed entries are
        counted and skipped, duplicates keep their first mapping.

        Args:
            snapshot: Parsed JSON document

        Returns:
            New tables (not yet installed)
        """
        forward: Dict[int, str] = {}
        inverse: Dict[str, int] = {}
        duplicates = 0
        malformed = 0

        for pair in self.iter_pairs(snapshot):
            try:
                raw_canonical, raw_secondary = pair
            except (TypeError, ValueError):
                malformed += 1
                continue
            canonical = _canonical(raw_canonical)
            secondary = _secondary(raw_secondary)
            if canonical is None or secondary is None:
                if raw_canonical is not None and raw_secondary is not None:
                    malformed += 1
                continue
            if canonical in forward:
                duplicates += 1
            else:
                forward[canonical] = secondary
            inverse.setdefault(secondary, canonical)

        if duplicates or malformed:
            logger.debug(f"{self.name}: {duplicates} duplicate and {malformed} malformed entries skipped")
        return _Tables(forward=forward, inverse=inverse)

    def install(self, tables: _Tables):
        self._tables = tables
        self.loaded = True
        self.loaded_at = self._clock()
        logger.info(f"{self.name}: indexed {len(tables.forward):,} mappings")

    def _read_disk(self, fresh_only: bool = True) -> Optional[Any]:
        if not self.path.exists():
            return None
        age = self._clock() - self.path.stat().st_mtime
        if fresh_only and age >= self.max_age_seconds:
            logger.info(f"{self.name}: disk snapshot is {age / 86400:.1f} days old, re-downloading")
            return None
        try:
            with self.path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"{self.name}: disk snapshot unreadable ({e})")
            return None

    def _persist(self, text: str):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(text, encoding="utf-8")
        os.replace(tmp_path, self.path)

    async def _fetch_text(self) -> str:
        """Download the raw snapshot body"""
        timeout = aiohttp.ClientTimeout(total=self.download_timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self.url) as response:
                    if response.status != 200:
                        raise UpstreamRejected(
                            f"Failed to download {self.name}: HTTP {response.status}",
                            status=response.status,
                        )
                    return await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientUpstreamError(f"Failed to download {self.name}: {e!r}") from e

    async def _download(self) -> Any:
        logger.info(f"{self.name}: downloading {self.url}")
        text = await self._fetch_text()
        snapshot = await asyncio.to_thread(json.loads, text)
        try:
            await asyncio.to_thread(self._persist, text)
        except OSError as e:
            logger.warning(f"{self.name}: could not write disk snapshot: {e}")
        logger.info(f"{self.name}: download complete")
        return snapshot

    async def load(self):
        """
        Initialise from disk if fresh enough, else download.

        Raises:
            SnapshotUnavailable: download failed and no snapshot is on disk
        """
        snapshot = await asyncio.to_thread(self._read_disk, True)
        if snapshot is not None:
            logger.info(f"{self.name}: loading from disk cache")
        else:
            try:
                snapshot = await self._download()
            except (UpstreamError, ValueError) as e:
                snapshot = await asyncio.to_thread(self._read_disk, False)
                if snapshot is None:
                    raise SnapshotUnavailable(self.name, str(e)) from e
                logger.warning(f"{self.name}: download failed ({e}), using stale disk snapshot")

        self.install(await asyncio.to_thread(self.parse, snapshot))

    async def refresh(self) -> bool:
        """
        Re-download and swap in new tables; the old tables stay on failure

        Returns:
            True if the tables were replaced
        """
        try:
            snapshot = await self._download()
        except (UpstreamError, ValueError) as e:
            logger.error(f"{self.name}: refresh failed: {e}")
            return False
        self.install(await asyncio.to_thread(self.parse, snapshot))
        return True


class FribbDatabase(OfflineIndex):
    """Fribb anime-lists: AniList -> TMDB TV ID"""

    name = "fribbDb"

    def __init__(self, url: Optional[str] = None, path: Optional[Path] = None, **kwargs):
        super().__init__(
            url or settings.FRIBB_DB_URL,
            path or Path(settings.DATA_DIR) / "anime-list-full.json",
            **kwargs,
        )

    def iter_pairs(self, snapshot: Any) -> Iterable[Pair]:
        entries = snapshot if isinstance(snapshot, list) else []
        for entry in entries:
            if not isinstance(entry, dict):
                yield None
                continue
            # TMDB movie IDs live in a different namespace than /tv/ IDs
            if str(entry.get("type", "")).upper() == "MOVIE":
                continue
            yield entry.get("anilist_id"), entry.get("themoviedb_id")


class AnimeOfflineDatabase(OfflineIndex):
    """manami-project anime-offline-database: AniList -> Kitsu ID"""

    name = "offlineDb"

    ANILIST_RE = re.compile(r"anilist\.co/anime/(\d+)")
    KITSU_RE = re.compile(r"kitsu\.(?:app|io)/anime/(\d+)")

    def __init__(self, url: Optional[str] = None, path: Optional[Path] = None, **kwargs):
        super().__init__(
            url or settings.OFFLINE_DB_URL,
            path or Path(settings.DATA_DIR) / "anime-offline-database.json",
            **kwargs,
        )

    def iter_pairs(self, snapshot: Any) -> Iterable[Pair]:
        entries = snapshot.get("data") if isinstance(snapshot, dict) else snapshot
        if not isinstance(entries, list):
            logger.warning(f"{self.name}: unexpected format - data is not an array")
            return
        for entry in entries:
            sources = entry.get("sources") if isinstance(entry, dict) else None
            if not isinstance(sources, list):
                yield None
                continue
            anilist_id = kitsu_id = None
            for source in sources:
                if not isinstance(source, str):
                    continue
                anilist_match = self.ANILIST_RE.search(source)
                if anilist_match:
                    anilist_id = anilist_match.group(1)
                    continue
                kitsu_match = self.KITSU_RE.search(source)
                if kitsu_match:
                    kitsu_id = kitsu_match.group(1)
            yield anilist_id, kitsu_id
