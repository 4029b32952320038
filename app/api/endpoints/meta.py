"""
Meta Endpoint
Returns full metadata (with episodes) for a catalog item
"""
from fastapi import APIRouter, Depends, Path, Response
from app.api.endpoints.catalog import set_cache_headers
from app.core.state import AddonState, get_state
from app.models.stremio import MetaResponse
from app.services.catalog import cache_hints
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/meta/{type}/{id}.json")
async def get_meta(
    response: Response,
    type: str = Path(..., description="Content type: series, movie or anime"),
    id: str = Path(..., description="Stremio ID, e.g. kitsu:7442"),
    state: AddonState = Depends(get_state),
):
    """
    Return meta for a Stremio ID

    Unknown or unresolvable IDs answer {"meta": null} rather than an error,
    so Stremio can try the next addon.
    """
    try:
        meta = await state.catalogs.get_meta(id)
    except Exception as e:
        logger.error(f"Error building meta {type}/{id}: {e}", exc_info=True)
        meta = None

    if meta is None:
        response.headers["Cache-Control"] = "no-cache"
        return {"meta": None}

    hints = cache_hints(state.catalogs.meta_ttl)
    set_cache_headers(response, hints)
    return MetaResponse(meta=meta, **hints).model_dump(exclude_none=True)
