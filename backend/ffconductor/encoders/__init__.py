"""
Encoder catalogue and hardware capability detection.
"""

from .models import EncoderType, HardwareEncoder
from .catalogue import (
    DEFAULT_SOFTWARE_ENCODER,
    ENCODER_CATALOGUE,
    FailurePhraseRules,
    candidates_for_codec,
    get_codecs_for_encoder,
)
from .detector import EncoderDetector, DetectionCache, CACHE_TTL

__all__ = [
    "EncoderType",
    "HardwareEncoder",
    "DEFAULT_SOFTWARE_ENCODER",
    "ENCODER_CATALOGUE",
    "FailurePhraseRules",
    "candidates_for_codec",
    "get_codecs_for_encoder",
    "EncoderDetector",
    "DetectionCache",
    "CACHE_TTL",
]
