"""
Built-in system templates.

Seeded on first run and restored by a system-template reset. Every preset
quotes its path placeholders. Hardware presets name the encoder they need so
callers can check it against the encoder detector before submitting.
"""

from typing import List

from .models import CommandTemplate, TemplateType


CATEGORY_TRANSCODE = "Video Transcode"
CATEGORY_AUDIO = "Audio Extraction"
CATEGORY_COMPRESS = "Video Compression"
CATEGORY_RESOLUTION = "Resolution"
CATEGORY_SPECIAL = "Special"
CATEGORY_HARDWARE = "Hardware Acceleration"

_COMMON_VIDEO_INPUTS = ["mp4", "avi", "mkv", "mov", "webm"]


def _scale_args(width: int, height: int) -> str:
    return (
        f'-i "{{input}}" -vf "scale={width}:{height}:force_original_aspect_ratio=decrease,'
        f'pad={width}:{height}:(ow-iw)/2:(oh-ih)/2" -c:v libx264 -crf 23 -c:a aac "{{output}}"'
    )


# (name, description, command_args, category, input formats, extension, required encoder)
_PRESETS = [
    # Video transcode
    (
        "MP4 (H.264)",
        "Convert to MP4 with H.264, the most compatible choice",
        '-i "{input}" -c:v libx264 -preset medium -crf 23 -c:a aac -b:a 128k "{output}"',
        CATEGORY_TRANSCODE, ["avi", "mkv", "mov", "wmv", "flv", "webm"], "mp4", None,
    ),
    (
        "MP4 (H.265/HEVC)",
        "Convert to MP4 with H.265 for smaller files",
        '-i "{input}" -c:v libx265 -preset medium -crf 28 -c:a aac -b:a 128k "{output}"',
        CATEGORY_TRANSCODE, [], "mp4", None,
    ),
    (
        "WebM (VP9)",
        "Convert to WebM with VP9, suited for the web",
        '-i "{input}" -c:v libvpx-vp9 -crf 30 -b:v 0 -c:a libopus -b:a 128k "{output}"',
        CATEGORY_TRANSCODE, [], "webm", None,
    ),
    # Audio extraction
    (
        "Extract audio as MP3",
        "Extract the audio track and encode it as MP3",
        '-i "{input}" -vn -c:a libmp3lame -b:a 192k "{output}"',
        CATEGORY_AUDIO, _COMMON_VIDEO_INPUTS, "mp3", None,
    ),
    (
        "Extract audio as AAC",
        "Extract the audio track and encode it as AAC",
        '-i "{input}" -vn -c:a aac -b:a 256k "{output}"',
        CATEGORY_AUDIO, _COMMON_VIDEO_INPUTS, "m4a", None,
    ),
    (
        "Extract audio as FLAC",
        "Extract the audio track losslessly as FLAC",
        '-i "{input}" -vn -c:a flac "{output}"',
        CATEGORY_AUDIO, _COMMON_VIDEO_INPUTS, "flac", None,
    ),
    # Compression
    (
        "Compress (high quality)",
        "Compress while keeping high quality (CRF 18)",
        '-i "{input}" -c:v libx264 -preset slow -crf 18 -c:a aac -b:a 192k "{output}"',
        CATEGORY_COMPRESS, [], "mp4", None,
    ),
    (
        "Compress (balanced)",
        "Balance quality and size (CRF 23)",
        '-i "{input}" -c:v libx264 -preset medium -crf 23 -c:a aac -b:a 128k "{output}"',
        CATEGORY_COMPRESS, [], "mp4", None,
    ),
    (
        "Compress (small size)",
        "Aggressive compression at some quality cost (CRF 28)",
        '-i "{input}" -c:v libx264 -preset fast -crf 28 -c:a aac -b:a 96k "{output}"',
        CATEGORY_COMPRESS, [], "mp4", None,
    ),
    # Resolution
    ("Scale to 1080p", "Fit into 1920x1080 with padding", _scale_args(1920, 1080), CATEGORY_RESOLUTION, [], "mp4", None),
    ("Scale to 720p", "Fit into 1280x720 with padding", _scale_args(1280, 720), CATEGORY_RESOLUTION, [], "mp4", None),
    ("Scale to 480p", "Fit into 854x480 with padding", _scale_args(854, 480), CATEGORY_RESOLUTION, [], "mp4", None),
    # Special
    (
        "Video to GIF",
        "Render an animated GIF with a generated palette",
        '-i "{input}" -vf "fps=10,scale=480:-1:flags=lanczos,split[s0][s1];[s0]palettegen[p];[s1][p]paletteuse" -loop 0 "{output}"',
        CATEGORY_SPECIAL, _COMMON_VIDEO_INPUTS, "gif", None,
    ),
    (
        "Stream copy (no re-encode)",
        "Copy audio and video streams into a new container",
        '-i "{input}" -c copy "{output}"',
        CATEGORY_SPECIAL, [], "mp4", None,
    ),
    # Hardware acceleration
    (
        "NVENC H.264 (NVIDIA GPU)",
        "H.264 on an NVIDIA GPU",
        '-i "{input}" -c:v h264_nvenc -preset p4 -cq 23 -c:a aac -b:a 128k "{output}"',
        CATEGORY_HARDWARE, [], "mp4", "h264_nvenc",
    ),
    (
        "NVENC H.265 (NVIDIA GPU)",
        "H.265/HEVC on an NVIDIA GPU",
        '-i "{input}" -c:v hevc_nvenc -preset p4 -cq 28 -c:a aac -b:a 128k "{output}"',
        CATEGORY_HARDWARE, [], "mp4", "hevc_nvenc",
    ),
    (
        "QSV H.264 (Intel GPU)",
        "H.264 on Intel Quick Sync",
        '-i "{input}" -c:v h264_qsv -preset medium -global_quality 23 -c:a aac -b:a 128k "{output}"',
        CATEGORY_HARDWARE, [], "mp4", "h264_qsv",
    ),
    (
        "QSV H.265 (Intel GPU)",
        "H.265/HEVC on Intel Quick Sync",
        '-i "{input}" -c:v hevc_qsv -preset medium -global_quality 28 -c:a aac -b:a 128k "{output}"',
        CATEGORY_HARDWARE, [], "mp4", "hevc_qsv",
    ),
    (
        "AMF H.264 (AMD GPU)",
        "H.264 on an AMD GPU",
        '-i "{input}" -c:v h264_amf -quality balanced -rc cqp -qp_i 23 -qp_p 23 -c:a aac -b:a 128k "{output}"',
        CATEGORY_HARDWARE, [], "mp4", "h264_amf",
    ),
    (
        "AMF H.265 (AMD GPU)",
        "H.265/HEVC on an AMD GPU",
        '-i "{input}" -c:v hevc_amf -quality balanced -rc cqp -qp_i 28 -qp_p 28 -c:a aac -b:a 128k "{output}"',
        CATEGORY_HARDWARE, [], "mp4", "hevc_amf",
    ),
]


def get_system_templates() -> List[CommandTemplate]:
    """Fresh system template instances (new ids, sort order by position)."""
    templates = []
    for sort_order, (name, description, args, category, inputs, extension, encoder) in enumerate(_PRESETS):
        templates.append(
            CommandTemplate(
                name=name,
                description=description,
                command_args=args,
                type=TemplateType.SYSTEM,
                category=category,
                supported_input_formats=list(inputs),
                output_extension=extension,
                requires_hardware_acceleration=encoder is not None,
                required_encoder=encoder,
                sort_order=sort_order,
            )
        )
    return templates
