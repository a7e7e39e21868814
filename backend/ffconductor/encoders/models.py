"""
Hardware encoder models.

Encoder rows are a detection cache: each detection run replaces all of them.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class EncoderType(str, Enum):
    """Encoder family."""

    SOFTWARE = "software"  # CPU
    NVENC = "nvenc"  # NVIDIA
    QSV = "qsv"  # Intel Quick Sync
    AMF = "amf"  # AMD
    VIDEOTOOLBOX = "videotoolbox"  # Apple


class HardwareEncoder(BaseModel):
    """Detected state of one FFmpeg encoder."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))

    # FFmpeg encoder name, e.g. "h264_nvenc"
    name: str
    display_name: str
    type: EncoderType = EncoderType.SOFTWARE

    is_available: bool = False
    supported_codecs: List[str] = Field(default_factory=list)

    last_checked_at: datetime = Field(default_factory=datetime.now)

    # Set when is_available is False
    unavailable_reason: Optional[str] = None

    @property
    def is_hardware(self) -> bool:
        return self.type != EncoderType.SOFTWARE
