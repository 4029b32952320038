"""
Static Site Builder
Renders the addon's manifest, catalog pages and metas into a directory of
JSON files laid out like the addon URL scheme:

    dist/manifest.json
    dist/catalog/series/anilist-trending.json
    dist/catalog/series/anilist-trending/skip=100.json
    dist/catalog/anime/anilist-anime/format=TV&genre=Action.json
    dist/meta/series/anilist:16498.json
"""
import asyncio
import json
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from app.core.config import settings
from app.core.errors import UpstreamError
from app.models.anilist import Media
from app.services.catalog import (
    FORMAT_MAP,
    GENRES,
    STATUS_MAP,
    CatalogDefinition,
    CatalogService,
    build_manifest,
    discover_years,
)
from app.utils.meta_builder import build_full_meta, build_meta_preview

logger = logging.getLogger(__name__)


@dataclass
class BuildTarget:
    """One catalog (optionally filtered) to render"""
    definition: CatalogDefinition
    filters: Dict[str, str] = field(default_factory=dict)
    pages: int = 1
    skip_if_exists: bool = False

    @property
    def label(self) -> str:
        if not self.filters:
            return self.definition.id
        return f"{self.definition.id} ({extra_key(self.filters, 1, 1)})"


@dataclass
class BuildReport:
    catalog_pages: int = 0
    skipped_catalogs: int = 0
    failures: int = 0
    tmdb_metas: int = 0
    fallback_metas: int = 0
    skipped_metas: int = 0
    files: int = 0


def extra_key(filters: Dict[str, str], page: int, per_page: int) -> Optional[str]:
    """
    Extra path segment for a page, keys sorted the way Stremio encodes them

    Args:
        filters: Active filters (display values)
        page: 1-based page number
        per_page: Items per page

    Returns:
        e.g. "genre=Action&skip=100", or None for an unfiltered first page
    """
    params = dict(filters)
    if page > 1:
        params["skip"] = str((page - 1) * per_page)
    if not params:
        return None
    return "&".join(f"{key}={params[key]}" for key in sorted(params))


def build_targets(
    catalogs: Dict[str, CatalogDefinition],
    pages: int,
    filter_combos: bool = True,
) -> List[BuildTarget]:
    """
    Expand the catalog definitions into every page set to render

    Unfiltered catalogs get `pages` pages. Filtered catalogs get one
    unfiltered page, one page per filter option and, with filter_combos,
    one page per genre paired with each format, status and year.
    """
    targets: List[BuildTarget] = []
    options = {
        "genre": GENRES,
        "format": list(FORMAT_MAP),
        "status": list(STATUS_MAP),
        "year": discover_years(),
    }

    for definition in catalogs.values():
        if not definition.filters:
            targets.append(BuildTarget(definition, pages=pages))
            continue

        targets.append(BuildTarget(definition, pages=1))
        for name in definition.filters:
            for value in options.get(name, []):
                targets.append(BuildTarget(definition, {name: value}, skip_if_exists=True))

        if filter_combos and "genre" in definition.filters:
            for genre in GENRES:
                for name in definition.filters:
                    if name == "genre":
                        continue
                    for value in options.get(name, []):
                        targets.append(
                            BuildTarget(definition, {"genre": genre, name: value}, skip_if_exists=True)
                        )

    return targets


class StaticSiteBuilder:
    """Writes the addon's responses to disk for static hosting"""

    def __init__(
        self,
        service: CatalogService,
        dist_dir: Optional[Path] = None,
        pages: Optional[int] = None,
        page_delay: Optional[float] = None,
        filter_combos: Optional[bool] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.service = service
        self.dist = Path(dist_dir or settings.DIST_DIR)
        self.pages = pages or settings.BUILD_PAGES
        self.page_delay = settings.BUILD_PAGE_DELAY if page_delay is None else page_delay
        self.filter_combos = settings.BUILD_FILTER_COMBOS if filter_combos is None else filter_combos
        self._sleep = sleep
        self.report = BuildReport()

    def catalog_path(self, type: str, catalog_id: str, extra: Optional[str]) -> Path:
        if not extra:
            return self.dist / "catalog" / type / f"{catalog_id}.json"
        return self.dist / "catalog" / type / catalog_id / f"{extra}.json"

    def meta_path(self, type: str, stremio_id: str) -> Path:
        return self.dist / "meta" / type / f"{stremio_id}.json"

    def write_json(self, path: Path, data: Any):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, separators=(",", ":")), encoding="utf-8")

    def clean_dynamic(self):
        """
        Remove the outputs that must be rebuilt every run

        Filtered pages and metas are left in place and reused.
        """
        self.dist.mkdir(parents=True, exist_ok=True)
        paths = [self.dist / "manifest.json"]
        for definition in self.service.catalogs.values():
            paths.append(self.catalog_path(definition.type, definition.id, None))
            if not definition.filters:
                paths.append(self.dist / "catalog" / definition.type / definition.id)

        for path in paths:
            if path.is_dir():
                shutil.rmtree(path)
            elif path.exists():
                path.unlink()

    async def build_page(
        self,
        target: BuildTarget,
        page: int,
        collected: Dict[str, Tuple[Media, str]],
    ) -> int:
        """
        Fetch, resolve and write one catalog page

        Returns:
            Number of items written
        """
        definition = target.definition
        variables = self.service.build_variables(definition, page, target.filters)
        page_data = await self.service.anilist.query_page(definition.query, variables)

        stremio_ids = await asyncio.gather(
            *(self.service.resolver.resolve(media) for media in page_data.media)
        )
        metas = []
        for media, stremio_id in zip(page_data.media, stremio_ids):
            metas.append(build_meta_preview(media, stremio_id, definition.item_type))
            collected.setdefault(stremio_id, (media, definition.type))

        key = extra_key(target.filters, page, self.service.anilist.per_page)
        self.write_json(
            self.catalog_path(definition.type, definition.id, key),
            {"metas": [meta.model_dump(exclude_none=True) for meta in metas]},
        )
        self.report.catalog_pages += 1
        logger.info(f"  wrote catalog/{definition.type}/{definition.id}{'/' + key if key else ''} ({len(metas)} items)")
        return len(metas)

    async def build_target(self, target: BuildTarget, collected: Dict[str, Tuple[Media, str]]):
        """Build every page of a target, honouring skip_if_exists"""
        definition = target.definition
        first_key = extra_key(target.filters, 1, self.service.anilist.per_page)
        if target.skip_if_exists and self.catalog_path(definition.type, definition.id, first_key).exists():
            logger.info(f"  skipped (cached): catalog/{definition.type}/{definition.id}/{first_key}")
            self.report.skipped_catalogs += 1
            return

        for page in range(1, target.pages + 1):
            await self.build_page(target, page, collected)
            await self._sleep(self.page_delay)

    def write_meta(self, meta, stremio_id: str):
        """Write a meta under every type Stremio may request it as"""
        types = ["movie"] if meta.type == "movie" else ["series", "anime"]
        payload = {"meta": meta.model_dump(exclude_none=True)}
        for type in types:
            self.write_json(self.meta_path(type, stremio_id), payload)

    async def build_metas(self, collected: Dict[str, Tuple[Media, str]]):
        """
        Write a meta for every collected catalog item

        TMDB (episodes and thumbnails) is used when a TMDB ID is known,
        otherwise the AniList record already in hand.
        """
        service = self.service
        for stremio_id, (media, _catalog_type) in collected.items():
            check_type = "movie" if media.format == "MOVIE" else "series"
            if self.meta_path(check_type, stremio_id).exists():
                self.report.skipped_metas += 1
                continue

            tmdb_id = service.fribb_db.forward(media.id) if service.tmdb.enabled else None
            if tmdb_id:
                meta = await service.meta_from_tmdb(stremio_id, int(tmdb_id))
                if meta is not None:
                    self.write_meta(meta, stremio_id)
                    self.report.tmdb_metas += 1
                    await self._sleep(settings.TMDB_SEASON_DELAY)
                    continue

            self.write_meta(build_full_meta(media, stremio_id), stremio_id)
            self.report.fallback_metas += 1

        logger.info(
            f"  meta files: {self.report.tmdb_metas} from TMDB, "
            f"{self.report.fallback_metas} from AniList fallback, "
            f"{self.report.skipped_metas} skipped (cached)"
        )

    def count_files(self) -> int:
        return sum(1 for path in self.dist.rglob("*") if path.is_file())

    async def run(self) -> BuildReport:
        """
        Run the full build

        Returns:
            Counts of what was written, skipped and failed
        """
        logger.info("Build started")
        self.clean_dynamic()

        manifest = build_manifest(self.service.catalogs)
        self.write_json(self.dist / "manifest.json", manifest.model_dump())
        logger.info("  wrote manifest.json")

        collected: Dict[str, Tuple[Media, str]] = {}
        for target in build_targets(self.service.catalogs, self.pages, self.filter_combos):
            logger.info(f"Building catalog: {target.label}")
            try:
                await self.build_target(target, collected)
            except UpstreamError as e:
                logger.warning(f"  skipped {target.label}: {e}")
                self.report.failures += 1

        logger.info("Building meta files...")
        await self.build_metas(collected)

        self.report.files = self.count_files()
        suffix = f" ({self.report.failures} catalogs skipped due to errors)" if self.report.failures else ""
        logger.info(f"Build complete - {self.report.files} files written to {self.dist}/{suffix}")
        return self.report
