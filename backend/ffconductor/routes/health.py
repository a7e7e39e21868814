"""
Health check endpoint.
"""

from fastapi import APIRouter, Request

from .. import __version__

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request):
    """Liveness plus whether ffmpeg could be located."""
    locator = request.app.state.locator
    return {
        "status": "ok",
        "version": __version__,
        "ffmpeg_found": locator.find_ffmpeg() is not None,
    }
