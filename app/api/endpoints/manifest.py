"""
Manifest Endpoint
Returns the Stremio addon manifest
"""
import logging
from fastapi import APIRouter, Depends, Response
from app.core.state import AddonState, get_state
from app.services.catalog import build_manifest

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/manifest.json")
async def get_manifest(response: Response, state: AddonState = Depends(get_state)):
    """
    Return the addon manifest

    The manifest defines what catalogs this addon provides
    """
    response.headers["Cache-Control"] = "max-age=3600"
    manifest = build_manifest(state.catalogs.catalogs)
    logger.debug(f"Manifest served with {len(manifest.catalogs)} catalogs")
    return manifest.model_dump()
