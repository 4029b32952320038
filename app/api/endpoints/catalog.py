"""
Catalog Endpoint
Returns AniList-backed catalog pages
"""
from typing import Dict
from urllib.parse import parse_qsl
from fastapi import APIRouter, Depends, Path, Response
from app.core.state import AddonState, get_state
from app.models.stremio import CatalogResponse
from app.services.catalog import cache_hints
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


def parse_extra(extra: str) -> Dict[str, str]:
    """
    Parse a Stremio extra path segment

    Args:
        extra: e.g. "genre=Action&skip=100" (already URL-decoded once by the router)

    Returns:
        Mapping of extra name to value
    """
    return {key: value for key, value in parse_qsl(extra, keep_blank_values=False)}


def set_cache_headers(response: Response, hints: Dict[str, int]):
    response.headers["Cache-Control"] = (
        f"max-age={hints['cacheMaxAge']}, "
        f"stale-while-revalidate={hints['staleRevalidate']}, "
        f"stale-if-error={hints['staleError']}, public"
    )


async def _catalog_response(
    state: AddonState,
    response: Response,
    type: str,
    id: str,
    extra: Dict[str, str],
):
    try:
        metas = await state.catalogs.get_catalog_page(id, extra)
    except Exception as e:
        logger.error(f"Error building catalog {type}/{id}: {e}", exc_info=True)
        metas = []

    hints = cache_hints(state.catalogs.catalog_ttl(id)) if metas else cache_hints(0)
    set_cache_headers(response, hints)
    logger.info(f"Catalog {id} returned {len(metas)} items")
    return CatalogResponse(metas=metas, **hints).model_dump(exclude_none=True)


@router.get("/catalog/{type}/{id}.json")
async def get_catalog(
    response: Response,
    type: str = Path(..., description="Content type: series, movie or anime"),
    id: str = Path(..., description="Catalog ID"),
    state: AddonState = Depends(get_state),
):
    """Return the first page of a catalog"""
    return await _catalog_response(state, response, type, id, {})


@router.get("/catalog/{type}/{id}/{extra}.json")
async def get_catalog_with_extra(
    response: Response,
    type: str = Path(..., description="Content type: series, movie or anime"),
    id: str = Path(..., description="Catalog ID"),
    extra: str = Path(..., description="Extras, e.g. genre=Action&skip=100"),
    state: AddonState = Depends(get_state),
):
    """Return a catalog page selected by skip and filters"""
    return await _catalog_response(state, response, type, id, parse_extra(extra))
