"""
FFmpeg progress parsing.

FFmpeg writes progress to stderr in this format:
    frame=  100 fps= 25 q=28.0 size=    512kB time=00:01:02.50 bitrate= 67.1kbits/s speed=2.0x

We parse:
- time=HH:MM:SS.ss → current position
- Compare against the input duration → percentage
- speed=N.Nx → ETA for the remaining media time
"""

import re
from dataclasses import dataclass
from typing import Optional


# Matches: time=00:00:01.00 or time=00:01:23.45
TIME_PATTERN = re.compile(r'time=(\d{2}):(\d{2}):(\d{2}\.\d{2})')

# Matches: speed=2.0x or speed= 1.25x
SPEED_PATTERN = re.compile(r'speed=\s*([\d.]+)x')


@dataclass
class ConversionProgress:
    """One parsed progress update."""

    # Progress percentage (0-100)
    percentage: float

    # Current position in seconds
    current_time: float

    # Total duration in seconds (0 when unknown)
    total_duration: float

    # Processing speed multiplier, e.g. 2.0 for 2.0x
    speed: Optional[float] = None

    # Estimated seconds remaining
    eta_seconds: Optional[float] = None

    # The stderr line this update was parsed from
    raw_output: str = ""


def parse_progress(line: str, total_duration: float) -> Optional[ConversionProgress]:
    """
    Parse a single line of FFmpeg stderr output.

    Args:
        line: Single line from FFmpeg stderr
        total_duration: Input duration in seconds (<= 0 when unknown)

    Returns:
        ConversionProgress if the line carried a time= field, None otherwise
    """
    time_match = TIME_PATTERN.search(line)
    if not time_match:
        return None

    hours = int(time_match.group(1))
    minutes = int(time_match.group(2))
    seconds = float(time_match.group(3))
    current_time = hours * 3600 + minutes * 60 + seconds

    if total_duration > 0:
        percentage = min(100.0, (current_time / total_duration) * 100.0)
    else:
        percentage = 0.0

    speed = None
    speed_match = SPEED_PATTERN.search(line)
    if speed_match:
        try:
            speed = float(speed_match.group(1))
        except ValueError:
            # e.g. "speed=...x" fragments
            speed = None

    eta = None
    if speed is not None and speed > 0 and total_duration > 0:
        eta = (total_duration - current_time) / speed

    return ConversionProgress(
        percentage=percentage,
        current_time=current_time,
        total_duration=total_duration,
        speed=speed,
        eta_seconds=eta,
        raw_output=line,
    )


def format_eta(eta_seconds: Optional[float]) -> str:
    """
    Format ETA for display.

    Args:
        eta_seconds: Estimated seconds remaining

    Returns:
        Human-readable ETA string
    """
    if eta_seconds is None:
        return "Estimating..."

    if eta_seconds < 0:
        return "Almost done..."

    if eta_seconds < 60:
        return f"{int(eta_seconds)}s remaining"

    if eta_seconds < 3600:
        minutes = int(eta_seconds / 60)
        seconds = int(eta_seconds % 60)
        return f"{minutes}m {seconds}s remaining"

    hours = int(eta_seconds / 3600)
    minutes = int((eta_seconds % 3600) / 60)
    return f"{hours}h {minutes}m remaining"


def format_size(size_bytes: Optional[int]) -> str:
    """Human-readable byte count: "512 B", "2.0 KB", "5.0 MB", "3.00 GB"."""
    if size_bytes is None:
        return "Unknown"
    if size_bytes < 1024:
        return f"{size_bytes} B"

    size = size_bytes / 1024
    for unit in ("KB", "MB"):
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.2f} GB"
