"""
System endpoints: FFmpeg installation, media probing, disk space and settings.
"""

import logging

from fastapi import APIRouter, HTTPException, Request

from .models import DiskSpaceResponse, ValidatePathRequest, ValidatePathResponse
from ..execution.probe import FFmpegInfo, MediaInfo
from ..execution.progress import format_size
from ..execution.tools import ToolLocator
from ..files import get_available_disk_space
from ..settings.models import AppSettings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/ffmpeg", response_model=FFmpegInfo)
def get_ffmpeg_info(request: Request):
    info = request.app.state.probe.get_ffmpeg_info()
    if info is None:
        raise HTTPException(status_code=404, detail="FFmpeg is not installed or not runnable")
    return info


@router.get("/media-info", response_model=MediaInfo)
def get_media_info(path: str, request: Request):
    info = request.app.state.probe.get_media_info(path)
    if info is None:
        raise HTTPException(status_code=404, detail=f"Could not read media info: {path}")
    return info


@router.get("/disk-space", response_model=DiskSpaceResponse)
def get_disk_space(path: str):
    """Free space on the volume that holds `path` (or its nearest existing parent)."""
    free = get_available_disk_space(path)
    return DiskSpaceResponse(path=path, free_bytes=free, free=format_size(free))


@router.get("/settings", response_model=AppSettings)
async def get_settings(request: Request):
    return request.app.state.settings_service.get_settings()


@router.put("/settings", response_model=AppSettings)
async def save_settings(body: AppSettings, request: Request):
    saved = request.app.state.settings_service.save_settings(body)
    _refresh_locator(request, saved)
    logger.info("[API] Settings saved")
    return saved


@router.post("/settings/reset", response_model=AppSettings)
async def reset_settings(request: Request):
    settings = request.app.state.settings_service.reset_to_default()
    _refresh_locator(request, settings)
    return settings


@router.post("/validate-ffmpeg", response_model=ValidatePathResponse)
def validate_ffmpeg(body: ValidatePathRequest, request: Request):
    valid = request.app.state.settings_service.validate_ffmpeg_path(body.path)
    return ValidatePathResponse(path=body.path, valid=valid)


def _refresh_locator(request: Request, settings: AppSettings) -> None:
    """Point the shared locator at the newly configured executables."""
    locator: ToolLocator = request.app.state.locator
    locator.configure(settings.ffmpeg_path, settings.ffprobe_path)
