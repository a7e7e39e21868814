"""
Read-only FFmpeg/ffprobe probes.

Every probe is best-effort: a missing tool, a non-zero exit, a timeout or
unparseable output yields None (or an empty list), never an exception.
"""

import logging
import os
import re
import subprocess
from typing import List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from .tools import ToolLocator

logger = logging.getLogger(__name__)


# Seconds allowed for any single probe invocation
PROBE_TIMEOUT_SECONDS = 30

VERSION_PATTERN = re.compile(r'version (\S+)')

# " DE mp4             MP4 (MPEG-4 Part 14)"
FORMAT_LINE_PATTERN = re.compile(r'^\s*[DE.]+\s+(\w+)', re.MULTILINE)

# " DEV.LS h264                 H.264 / AVC / MPEG-4 AVC"
CODEC_LINE_PATTERN = re.compile(r'^\s*[DEVASIL.]+\s+(\w+)', re.MULTILINE)

MEDIA_INFO_ARGS = [
    "-v", "error",
    "-select_streams", "v:0",
    "-show_entries", "format=duration,format_name:stream=codec_name,width,height,r_frame_rate",
    "-of", "json",
]


class FFmpegInfo(BaseModel):
    """Installed FFmpeg build summary."""

    model_config = ConfigDict(extra="forbid")

    version: str
    path: str
    supported_formats: List[str] = Field(default_factory=list)
    supported_codecs: List[str] = Field(default_factory=list)


class MediaInfo(BaseModel):
    """Basic facts about an input file."""

    model_config = ConfigDict(extra="forbid")

    file_path: str
    duration: float = 0.0  # Seconds
    format: str = "unknown"
    video_codec: Optional[str] = None
    audio_codec: Optional[str] = None
    width: int = 0
    height: int = 0
    frame_rate: float = 0.0
    file_size: int = 0  # Bytes


class MediaInfoParser(Protocol):
    """Turns raw ffprobe output into MediaInfo."""

    def parse(self, output: str, file_path: str, file_size: int) -> MediaInfo:
        ...


class RegexMediaInfoParser:
    """
    Tolerant scanner over ffprobe's JSON output.

    Takes the first match of each field anywhere in the text, so it does not
    care about nesting or stream order. Frame rate and audio codec are left
    at their defaults.
    """

    DURATION = re.compile(r'"duration":\s*"?([\d.]+)"?')
    FORMAT_NAME = re.compile(r'"format_name":\s*"([^"]+)"')
    CODEC_NAME = re.compile(r'"codec_name":\s*"([^"]+)"')
    WIDTH = re.compile(r'"width":\s*(\d+)')
    HEIGHT = re.compile(r'"height":\s*(\d+)')

    def parse(self, output: str, file_path: str, file_size: int) -> MediaInfo:
        duration = self.DURATION.search(output)
        format_name = self.FORMAT_NAME.search(output)
        codec = self.CODEC_NAME.search(output)
        width = self.WIDTH.search(output)
        height = self.HEIGHT.search(output)

        return MediaInfo(
            file_path=file_path,
            duration=float(duration.group(1)) if duration else 0.0,
            format=format_name.group(1) if format_name else "unknown",
            video_codec=codec.group(1) if codec else None,
            width=int(width.group(1)) if width else 0,
            height=int(height.group(1)) if height else 0,
            file_size=file_size,
        )


def _distinct(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))


class ToolProbe:
    """Version, capability and media-info queries against the installed tools."""

    def __init__(self, locator: ToolLocator, parser: Optional[MediaInfoParser] = None):
        self._locator = locator
        self._parser = parser or RegexMediaInfoParser()

    def _run(self, executable: Optional[str], args: List[str]) -> Optional[str]:
        """Run a probe and return stdout, or None on any failure."""
        if executable is None:
            return None
        try:
            result = subprocess.run(
                [executable] + args,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=PROBE_TIMEOUT_SECONDS,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"[Probe] {os.path.basename(executable)} {' '.join(args[:2])} failed: {e}")
            return None

        if result.returncode != 0:
            logger.debug(f"[Probe] {executable} exited with code {result.returncode}")
            return None
        return result.stdout

    def get_version(self) -> Optional[str]:
        output = self._run(self._locator.find_ffmpeg(), ["-version"])
        if output is None:
            return None
        match = VERSION_PATTERN.search(output)
        return match.group(1) if match else "Unknown"

    def get_supported_formats(self) -> List[str]:
        output = self._run(self._locator.find_ffmpeg(), ["-formats", "-hide_banner"])
        if output is None:
            return []
        return _distinct(FORMAT_LINE_PATTERN.findall(output))

    def get_supported_codecs(self) -> List[str]:
        output = self._run(self._locator.find_ffmpeg(), ["-codecs", "-hide_banner"])
        if output is None:
            return []
        return _distinct(CODEC_LINE_PATTERN.findall(output))

    def get_ffmpeg_info(self) -> Optional[FFmpegInfo]:
        """
        Aggregate version, formats and codecs.

        Returns:
            None when ffmpeg is missing or `-version` fails
        """
        version = self.get_version()
        if version is None:
            return None
        return FFmpegInfo(
            version=version,
            path=self._locator.find_ffmpeg() or "ffmpeg",
            supported_formats=self.get_supported_formats(),
            supported_codecs=self.get_supported_codecs(),
        )

    def get_media_info(self, file_path: str) -> Optional[MediaInfo]:
        """
        Probe duration, container and video stream facts with ffprobe.

        Returns:
            None if ffprobe is missing, fails, or the output cannot be parsed
        """
        output = self._run(self._locator.find_ffprobe(), MEDIA_INFO_ARGS + [file_path])
        if output is None:
            return None
        try:
            file_size = os.path.getsize(file_path)
            return self._parser.parse(output, file_path, file_size)
        except (OSError, ValueError) as e:
            logger.warning(f"[Probe] Could not read media info for {file_path}: {e}")
            return None
