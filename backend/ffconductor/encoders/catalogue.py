"""
Encoder catalogue and detection heuristics.

Static knowledge only: which FFmpeg encoders we probe, how they map to codec
families, and which stderr phrases betray a broken hardware encoder.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .models import EncoderType


DEFAULT_SOFTWARE_ENCODER = "libx264"

# Probed encoders: name -> (display name, family). Order is display order.
ENCODER_CATALOGUE: Dict[str, Tuple[str, EncoderType]] = {
    # NVIDIA NVENC
    "h264_nvenc": ("NVIDIA NVENC H.264", EncoderType.NVENC),
    "hevc_nvenc": ("NVIDIA NVENC H.265/HEVC", EncoderType.NVENC),
    "av1_nvenc": ("NVIDIA NVENC AV1", EncoderType.NVENC),
    # Intel Quick Sync Video (QSV)
    "h264_qsv": ("Intel QuickSync H.264", EncoderType.QSV),
    "hevc_qsv": ("Intel QuickSync H.265/HEVC", EncoderType.QSV),
    "av1_qsv": ("Intel QuickSync AV1", EncoderType.QSV),
    # AMD AMF
    "h264_amf": ("AMD AMF H.264", EncoderType.AMF),
    "hevc_amf": ("AMD AMF H.265/HEVC", EncoderType.AMF),
    # Apple VideoToolbox
    "h264_videotoolbox": ("Apple VideoToolbox H.264", EncoderType.VIDEOTOOLBOX),
    "hevc_videotoolbox": ("Apple VideoToolbox H.265/HEVC", EncoderType.VIDEOTOOLBOX),
    # Software (CPU)
    "libx264": ("Software H.264 (x264)", EncoderType.SOFTWARE),
    "libx265": ("Software H.265 (x265)", EncoderType.SOFTWARE),
    "libvpx-vp9": ("Software VP9 (libvpx)", EncoderType.SOFTWARE),
    "libaom-av1": ("Software AV1 (libaom)", EncoderType.SOFTWARE),
}

# Logical codec -> encoder preference, hardware first, software last
CODEC_CANDIDATES: Dict[str, List[str]] = {
    "h264": ["h264_nvenc", "h264_qsv", "h264_amf", "h264_videotoolbox", "libx264"],
    "hevc": ["hevc_nvenc", "hevc_qsv", "hevc_amf", "hevc_videotoolbox", "libx265"],
    "av1": ["av1_nvenc", "av1_qsv", "libaom-av1"],
    "vp9": ["libvpx-vp9"],
}

CODEC_ALIASES: Dict[str, str] = {
    "h264": "h264",
    "avc": "h264",
    "x264": "h264",
    "h265": "hevc",
    "hevc": "hevc",
    "x265": "hevc",
    "av1": "av1",
    "vp9": "vp9",
}

# Drivers that fall back silently can still exit 0, so stderr is checked too.
# Each group matches when all of its phrases are present.
DEFAULT_FAILURE_PHRASES: Tuple[Tuple[str, ...], ...] = (
    ("Cannot load",),
    ("Failed to",),
    ("No capable devices found",),
    ("Error initializing",),
    ("Device creation failed",),
    ("not available",),
    ("Cannot open",),
    ("hwaccel", "failed"),
)

REASON_NOT_COMPILED = "Encoder is not compiled into FFmpeg"
REASON_NOT_FUNCTIONAL = "Hardware acceleration unavailable or driver not installed"


def candidates_for_codec(codec: str) -> List[str]:
    """Ordered encoder candidates for a logical codec name (case-insensitive)."""
    family = CODEC_ALIASES.get(codec.strip().lower())
    if family is None:
        return [DEFAULT_SOFTWARE_ENCODER]
    return list(CODEC_CANDIDATES[family])


def get_codecs_for_encoder(encoder_name: str) -> List[str]:
    """Codec tags an encoder produces, derived from its name."""
    name = encoder_name.lower()
    if "h264" in name or "x264" in name:
        return ["h264", "avc"]
    if "hevc" in name or "h265" in name or "x265" in name:
        return ["hevc", "h265"]
    if "av1" in name:
        return ["av1"]
    if "vp9" in name:
        return ["vp9"]
    return []


@dataclass(frozen=True)
class FailurePhraseRules:
    """
    Deny/allow heuristics for the hardware functional test.

    The list is tool-version dependent and never exhaustive; it is data so
    operators can extend it without a release.
    """

    deny: Tuple[Tuple[str, ...], ...] = DEFAULT_FAILURE_PHRASES
    allow: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_lists(
        cls,
        deny: Sequence[Sequence[str]],
        allow: Sequence[str] = (),
    ) -> "FailurePhraseRules":
        return cls(
            deny=tuple(tuple(group) for group in deny if group),
            allow=tuple(allow),
        )

    def find_failure(self, stderr: str) -> Optional[str]:
        """
        Return the first matching failure group (joined with ' + '), or None.
        """
        if self.allow:
            lines = [
                line for line in stderr.splitlines()
                if not any(phrase in line for phrase in self.allow)
            ]
            stderr = "\n".join(lines)

        for group in self.deny:
            if all(phrase in stderr for phrase in group):
                return " + ".join(group)
        return None
