#!/usr/bin/env python3
"""
Build the addon as static JSON files for hosting without a live server

Usage:
    python build_static.py [--dist DIR] [--pages N] [--no-combos]
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from app.core.config import settings
from app.core.state import AddonState
from app.services.static_builder import StaticSiteBuilder

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger("build_static")


async def main(dist: Path, pages: int, combos: bool) -> int:
    state = AddonState.build()
    try:
        await state.load_tables()
        if state.tmdb.enabled:
            logger.info("TMDB API key found - meta will use TMDB episodes + thumbnails")
        else:
            logger.warning("TMDB_API_KEY not set - meta will fall back to AniList only (no episodes)")

        builder = StaticSiteBuilder(state.catalogs, dist_dir=dist, pages=pages, filter_combos=combos)
        report = await builder.run()
    finally:
        await state.close()
    return 0 if report.catalog_pages or report.skipped_catalogs else 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Render the addon to static JSON files")
    parser.add_argument("--dist", type=Path, default=Path(settings.DIST_DIR), help="Output directory")
    parser.add_argument("--pages", type=int, default=settings.BUILD_PAGES, help="Pages per catalog")
    parser.add_argument("--no-combos", action="store_true", help="Skip genre + filter combinations")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.dist, args.pages, not args.no_combos)))
