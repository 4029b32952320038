"""
Health Check Endpoint
"""
from fastapi import APIRouter, Depends
from app.core.state import AddonState, get_state

router = APIRouter()


@router.get("/health")
async def health_check(state: AddonState = Depends(get_state)):
    """Health check endpoint for monitoring"""
    return state.get_health_status()
