"""
Encoder detection endpoints.

Detection runs FFmpeg subprocesses, so these handlers are synchronous and
run in FastAPI's worker threads.
"""

from typing import List, Optional

from fastapi import APIRouter, Request

from ..encoders.models import HardwareEncoder

router = APIRouter(prefix="/api/encoders", tags=["encoders"])


@router.get("", response_model=List[HardwareEncoder])
def list_encoders(request: Request, refresh: bool = False):
    return request.app.state.encoder_detector.detect(force_refresh=refresh)


@router.get("/recommend")
def recommend_encoder(request: Request, codec: str = "h264", prefer_hardware: Optional[bool] = None):
    encoder = request.app.state.encoder_detector.recommend(codec, prefer_hardware=prefer_hardware)
    return {"codec": codec, "encoder": encoder}


@router.get("/{encoder_name}/available")
def encoder_available(encoder_name: str, request: Request):
    available = request.app.state.encoder_detector.is_encoder_available(encoder_name)
    return {"encoder": encoder_name, "available": available}
